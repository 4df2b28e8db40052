"""Calibration arithmetic.

Pure functions over (confidence, hit) pairs. A hit is "the recommended side
won"; confidence is the classifier's probability for that side, so the two
are directly comparable bucket by bucket.

Every rate uses safe_div: an empty bucket reports 0.0 rates rather than NaN,
and calibration_factor is None (not computed) below the minimum sample.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from linesentry.config import get_settings
from linesentry.services.odds import safe_div

LOG_LOSS_EPS = 1e-15


class CalibrationParams(BaseModel):
    """Calibration knobs from the ``calibration`` section of defaults.yaml."""

    bucket_count: int = 10
    min_bucket_samples: int = 10
    min_total_samples: int = 20
    min_signal_samples: int = 10

    factor_tolerance: float = 0.05
    max_threshold_step: float = 5
    pick_threshold_bounds: tuple[float, float] = (50, 150)
    fade_threshold_bounds: tuple[float, float] = (30, 120)

    max_k_step_ratio: float = 0.2
    logistic_k_bounds: tuple[float, float] = (10, 60)

    signal_low_accuracy: float = 0.40
    signal_high_accuracy: float = 0.60
    weight_decrease_factor: float = 0.5
    weight_increase_factor: float = 1.3
    min_weight: float = 5
    max_weight: float = 40
    min_weight_change: float = 3

    @classmethod
    def from_defaults(cls, defaults: dict[str, Any] | None = None) -> "CalibrationParams":
        if defaults is None:
            defaults = get_settings().load_defaults_config()
        return cls(**defaults.get("calibration", {}))


@dataclass(frozen=True)
class Outcome:
    confidence: float
    hit: bool


def bucket_index(confidence: float, bucket_count: int) -> int:
    """Fixed-width bucket for a confidence; 1.0 falls in the top bucket."""
    index = math.floor(confidence * bucket_count + 1e-9)
    return min(max(index, 0), bucket_count - 1)


def bucket_bounds(index: int, bucket_count: int) -> tuple[float, float]:
    return round(index / bucket_count, 6), round((index + 1) / bucket_count, 6)


@dataclass
class BucketStats:
    """Raw sums for one confidence bucket and the rates derived from them."""

    low: float
    high: float
    sample_size: int = 0
    hit_count: int = 0
    confidence_sum: float = 0.0
    brier_sum: float = 0.0

    def add(self, outcome: Outcome) -> None:
        hit = 1.0 if outcome.hit else 0.0
        self.sample_size += 1
        self.hit_count += int(outcome.hit)
        self.confidence_sum += outcome.confidence
        self.brier_sum += (outcome.confidence - hit) ** 2

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2

    @property
    def empirical_hit_rate(self) -> float:
        return safe_div(self.hit_count, self.sample_size, 0.0)

    @property
    def mean_confidence(self) -> float:
        return safe_div(self.confidence_sum, self.sample_size, 0.0)

    @property
    def brier_score(self) -> float:
        return safe_div(self.brier_sum, self.sample_size, 0.0)

    @property
    def calibration_error(self) -> float:
        if not self.sample_size:
            return 0.0
        return abs(self.empirical_hit_rate - self.mean_confidence)

    def is_low_sample(self, min_samples: int) -> bool:
        return self.sample_size < min_samples

    def calibration_factor(self, min_samples: int) -> float | None:
        """empirical / expected hit rate, expected being the bucket midpoint."""
        if self.is_low_sample(min_samples):
            return None
        return safe_div(self.empirical_hit_rate, self.midpoint, 1.0)

    def to_dict(self, min_samples: int) -> dict[str, Any]:
        factor = self.calibration_factor(min_samples)
        return {
            "range": [self.low, self.high],
            "sample_size": self.sample_size,
            "hit_count": self.hit_count,
            "empirical_hit_rate": round(self.empirical_hit_rate, 4),
            "mean_confidence": round(self.mean_confidence, 4),
            "brier_score": round(self.brier_score, 4),
            "calibration_error": round(self.calibration_error, 4),
            "calibration_factor": round(factor, 4) if factor is not None else None,
            "low_sample": self.is_low_sample(min_samples),
        }


def build_buckets(outcomes: Iterable[Outcome], bucket_count: int) -> list[BucketStats]:
    """Partition outcomes into ``bucket_count`` fixed-width buckets (all returned)."""
    buckets = [BucketStats(*bucket_bounds(i, bucket_count)) for i in range(bucket_count)]
    for outcome in outcomes:
        buckets[bucket_index(outcome.confidence, bucket_count)].add(outcome)
    return buckets


def brier_score(outcomes: list[Outcome]) -> float:
    total = sum((o.confidence - (1.0 if o.hit else 0.0)) ** 2 for o in outcomes)
    return safe_div(total, len(outcomes), 0.0)


def log_loss(outcomes: list[Outcome]) -> float:
    total = 0.0
    for o in outcomes:
        p = min(max(o.confidence, LOG_LOSS_EPS), 1 - LOG_LOSS_EPS)
        total -= math.log(p) if o.hit else math.log(1 - p)
    return safe_div(total, len(outcomes), 0.0)


def reliability(buckets: list[BucketStats]) -> float:
    """Sample-weighted mean squared gap between stated and empirical rates."""
    total = sum(b.sample_size for b in buckets)
    weighted = sum(
        b.sample_size * (b.mean_confidence - b.empirical_hit_rate) ** 2 for b in buckets
    )
    return safe_div(weighted, total, 0.0)


@dataclass
class SignalStats:
    """How often the side won when a signal fired."""

    name: str
    kind: str
    sample_size: int = 0
    side_won: int = 0

    @property
    def accuracy(self) -> float:
        """Sharp signals are right when the side wins; trap signals when it loses."""
        wins = self.side_won if self.kind == "sharp" else self.sample_size - self.side_won
        return safe_div(wins, self.sample_size, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "sample_size": self.sample_size,
            "accuracy": round(self.accuracy, 4),
        }


def signal_stats(
    records: Iterable[tuple[list[dict[str, Any]], bool]],
) -> dict[str, SignalStats]:
    """
    Aggregate per-signal outcomes.

    Args:
        records: (signals_detected, side_won) per verified recommendation
    """
    stats: dict[str, SignalStats] = {}
    for signals, side_won in records:
        for signal in signals:
            entry = stats.setdefault(
                signal["name"], SignalStats(name=signal["name"], kind=signal["kind"])
            )
            entry.sample_size += 1
            entry.side_won += int(side_won)
    return stats
