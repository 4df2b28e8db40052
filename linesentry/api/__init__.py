"""API layer for LineSentry."""
