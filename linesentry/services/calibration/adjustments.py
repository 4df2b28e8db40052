"""Feedback rules turning calibration results into a new SignalConfig body.

All rules are bounded and step-limited, and read only buckets that have a
calibration factor (sample size at or above the minimum).

- pick_threshold: buckets above 0.5 hitting below their midpoint mean PICKs
  are overconfident, so the threshold rises; hitting above lowers it.
- fade_threshold: the same for buckets below 0.5, using the miss rate.
- logistic_k: widened when stated confidence is further from 0.5 than the
  empirical rate (overconfident), narrowed when closer.
- signal weights: shrunk when a signal's accuracy is poor, grown when good.
"""

from dataclasses import dataclass, field
from typing import Any

from linesentry.services.calibration.metrics import BucketStats, CalibrationParams, SignalStats
from linesentry.services.odds import clamp, safe_div
from linesentry.services.signals.config import SignalConfig


@dataclass
class ConfigChange:
    path: str
    old: float
    new: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "old": self.old, "new": self.new, "reason": self.reason}


@dataclass
class Adjustment:
    config_data: dict[str, Any]
    changes: list[ConfigChange] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changes)


def _weighted_factor(buckets: list[BucketStats], params: CalibrationParams, above: bool) -> float | None:
    """Sample-weighted calibration factor on one side of 0.5 (miss-rate based below)."""
    total = 0
    weighted = 0.0
    for b in buckets:
        factor = b.calibration_factor(params.min_bucket_samples)
        if factor is None or b.midpoint == 0.5:
            continue
        if above and b.midpoint > 0.5:
            weighted += b.sample_size * factor
        elif not above and b.midpoint < 0.5:
            miss_factor = safe_div(1 - b.empirical_hit_rate, 1 - b.midpoint, 1.0)
            weighted += b.sample_size * miss_factor
        else:
            continue
        total += b.sample_size
    if not total:
        return None
    return weighted / total


def _threshold_step(current: float, factor: float, params: CalibrationParams) -> float:
    """Signed step: positive (stricter) when underperforming, negative when outperforming."""
    gap = 1.0 - factor
    if abs(gap) <= params.factor_tolerance:
        return 0.0
    return clamp(current * gap, -params.max_threshold_step, params.max_threshold_step)


def adjust_thresholds(
    config: SignalConfig, buckets: list[BucketStats], params: CalibrationParams
) -> list[ConfigChange]:
    changes = []
    for name, above, bounds in (
        ("pick_threshold", True, params.pick_threshold_bounds),
        ("fade_threshold", False, params.fade_threshold_bounds),
    ):
        factor = _weighted_factor(buckets, params, above)
        if factor is None:
            continue
        current = getattr(config, name)
        step = _threshold_step(current, factor, params)
        new = round(clamp(current + step, *bounds), 2)
        if new != current:
            changes.append(
                ConfigChange(name, current, new, f"weighted calibration factor {factor:.3f}")
            )
    return changes


def adjust_logistic_k(
    config: SignalConfig, buckets: list[BucketStats], params: CalibrationParams
) -> list[ConfigChange]:
    usable = [b for b in buckets if b.calibration_factor(params.min_bucket_samples) is not None]
    total = sum(b.sample_size for b in usable)
    if not total:
        return []

    overconfidence = sum(
        b.sample_size
        * (abs(b.mean_confidence - 0.5) - abs(b.empirical_hit_rate - 0.5))
        for b in usable
    ) / total
    if abs(overconfidence) <= params.factor_tolerance / 2:
        return []

    ratio = clamp(overconfidence * 2, -params.max_k_step_ratio, params.max_k_step_ratio)
    new = round(clamp(config.logistic_k * (1 + ratio), *params.logistic_k_bounds), 3)
    if new == config.logistic_k:
        return []
    return [
        ConfigChange("logistic_k", config.logistic_k, new, f"overconfidence {overconfidence:.3f}")
    ]


def adjust_signal_weights(
    config: SignalConfig, stats: dict[str, SignalStats], params: CalibrationParams
) -> list[ConfigChange]:
    changes = []
    for name, entry in sorted(stats.items()):
        if entry.sample_size < params.min_signal_samples:
            continue
        weights = config.sharp_weights if entry.kind == "sharp" else config.trap_weights
        if name not in weights:
            continue

        current = weights[name]
        if entry.accuracy < params.signal_low_accuracy:
            new = max(params.min_weight, current * params.weight_decrease_factor)
        elif entry.accuracy > params.signal_high_accuracy:
            new = min(params.max_weight, current * params.weight_increase_factor)
        else:
            continue

        new = round(new, 2)
        if abs(new - current) < params.min_weight_change:
            continue
        changes.append(
            ConfigChange(
                f"{entry.kind}_weights.{name}",
                current,
                new,
                f"accuracy {entry.accuracy:.3f} over {entry.sample_size}",
            )
        )
    return changes


def derive_adjustment(
    config: SignalConfig,
    buckets: list[BucketStats],
    stats: dict[str, SignalStats],
    params: CalibrationParams,
) -> Adjustment:
    """Apply every rule to a copy of the config body."""
    changes = (
        adjust_thresholds(config, buckets, params)
        + adjust_logistic_k(config, buckets, params)
        + adjust_signal_weights(config, stats, params)
    )

    data = config.to_config_data()
    for change in changes:
        if "." in change.path:
            section, key = change.path.split(".", 1)
            data[section][key] = change.new
        else:
            data[change.path] = change.new
    return Adjustment(config_data=data, changes=changes)
