"""Calendar models and the recurrence, deadline and query components."""
