"""Domain layer: event types and exceptions."""
