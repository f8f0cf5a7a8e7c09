"""Time, money and payload helpers."""
