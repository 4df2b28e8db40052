"""Database models for LineSentry."""

from linesentry.models.base import Base, get_session_factory, get_task_session
from linesentry.models.domain import (
    CalibrationBucket,
    EventResult,
    JobRun,
    MarketKey,
    OddsSnapshot,
    ScoredRecommendation,
    SignalConfigVersion,
    TrapPattern,
)

__all__ = [
    "Base",
    "get_session_factory",
    "get_task_session",
    "CalibrationBucket",
    "EventResult",
    "JobRun",
    "MarketKey",
    "OddsSnapshot",
    "ScoredRecommendation",
    "SignalConfigVersion",
    "TrapPattern",
]
