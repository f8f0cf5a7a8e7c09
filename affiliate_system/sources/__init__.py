"""External order sources."""
