"""Configuration for LineSentry."""

from linesentry.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
