"""In-process event bus and handlers."""
