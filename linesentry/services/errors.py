"""Domain errors for the signal engine.

Most of these never escape the hot path: the detector, scorer and config
repository catch them at their boundary and degrade (skip a signal, fall
back to DEFAULT). They exist so the degradation is explicit and logged.
"""


class LineSentryError(Exception):
    """Base class for LineSentry domain errors."""


class MissingDataError(LineSentryError):
    """Not enough snapshots (or a NULL point) to evaluate a movement or signal."""


class DoubleSettlementError(LineSentryError):
    """A recommendation was already verified; the transition is not re-applied."""

    def __init__(self, recommendation_id: int):
        super().__init__(f"Recommendation {recommendation_id} already verified")
        self.recommendation_id = recommendation_id


class RecommendationNotFoundError(LineSentryError):
    """No recommendation with the requested id."""

    def __init__(self, recommendation_id: int):
        super().__init__(f"Recommendation {recommendation_id} not found")
        self.recommendation_id = recommendation_id


class ConfigNotFoundError(LineSentryError):
    """No signal config exists for a sport (callers fall back to DEFAULT)."""

    def __init__(self, sport: str):
        super().__init__(f"No signal config for sport {sport}")
        self.sport = sport


class InvalidConfigError(LineSentryError, ValueError):
    """A signal config failed validation."""


class InsufficientSampleError(LineSentryError):
    """Too few verified outcomes to update live weights."""

    def __init__(self, sport: str, sample_size: int, required: int):
        super().__init__(
            f"{sport}: {sample_size} verified outcomes, {required} required"
        )
        self.sport = sport
        self.sample_size = sample_size
        self.required = required


class OddsFeedError(LineSentryError):
    """Odds feed request failed."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class CalibrationInProgressError(LineSentryError):
    """Another calibration pass holds the lock for this sport."""

    def __init__(self, sport: str):
        super().__init__(f"Calibration already running for {sport}")
        self.sport = sport
