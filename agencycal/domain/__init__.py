"""Collaborator contracts and their in-process implementations."""
