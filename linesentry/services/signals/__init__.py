"""Signal configuration and providers for LineSentry."""

from linesentry.services.signals.config import (
    DEFAULT_SPORT,
    SignalConfig,
    SignalConfigRepository,
)

__all__ = ["DEFAULT_SPORT", "SignalConfig", "SignalConfigRepository"]
