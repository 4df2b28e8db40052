"""Recommendation classifier.

Single-shot mapping of (sharp_score, trap_score, books_reporting) to
PICK / FADE / CAUTION plus a confidence in [0, 1].
"""

import math
from dataclasses import dataclass
from enum import Enum

from linesentry.services.signals.config import SignalConfig


class Recommendation(str, Enum):
    PICK = "PICK"
    FADE = "FADE"
    CAUTION = "CAUTION"


@dataclass(frozen=True)
class Classification:
    recommendation: Recommendation
    confidence: float
    reason: str


def confidence(sharp_score: float, trap_score: float, logistic_k: float) -> float:
    """
    Logistic squash of (sharp - trap) with steepness ``logistic_k``.

    Monotonic non-decreasing in the score difference; 0.5 when the scores
    are equal. Written to avoid overflow for large differences.
    """
    z = (sharp_score - trap_score) / logistic_k
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    ez = math.exp(z)
    return ez / (1.0 + ez)


def classify(
    sharp_score: float,
    trap_score: float,
    books_reporting: int,
    config: SignalConfig,
) -> Classification:
    """
    Classify a scored movement.

    PICK: sharp >= pick_threshold, trap < fade_threshold and enough books.
    FADE: trap >= fade_threshold while sharp stays below pick_threshold.
    CAUTION: everything else, including both thresholds met at once.
    """
    sharp_high = sharp_score >= config.pick_threshold
    trap_high = trap_score >= config.fade_threshold
    conf = confidence(sharp_score, trap_score, config.logistic_k)

    if sharp_high and trap_high:
        return Classification(Recommendation.CAUTION, conf, "mixed")
    if sharp_high:
        if books_reporting >= config.min_consensus_books:
            return Classification(Recommendation.PICK, conf, "sharp_dominant")
        return Classification(Recommendation.CAUTION, conf, "insufficient_books")
    if trap_high:
        return Classification(Recommendation.FADE, conf, "trap_dominant")
    return Classification(Recommendation.CAUTION, conf, "below_thresholds")
