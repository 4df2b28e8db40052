"""Service layer for LineSentry."""
