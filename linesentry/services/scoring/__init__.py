"""Scoring module for LineSentry."""

from linesentry.services.scoring.classifier import (
    Classification,
    Recommendation,
    classify,
    confidence,
)
from linesentry.services.scoring.engine import ScoreResult, SignalScorer
from linesentry.services.scoring.pipeline import ScoringPipeline

__all__ = [
    "Classification",
    "Recommendation",
    "ScoreResult",
    "ScoringPipeline",
    "SignalScorer",
    "classify",
    "confidence",
]
