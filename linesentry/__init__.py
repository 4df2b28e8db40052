"""LineSentry: odds-movement signal engine."""

__version__ = "0.1.0"
