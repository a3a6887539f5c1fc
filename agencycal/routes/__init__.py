"""HTTP route registration for agencycal."""

from .event_routes import register_event_routes

__all__ = ["register_event_routes"]
