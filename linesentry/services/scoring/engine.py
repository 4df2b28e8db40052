"""Sharp/trap signal scoring.

sharp_score = base_move_sharp x MW[magnitude] x TW[time]
            + sum(weight_i x indicator_i) over sharp indicators

trap_score  = base_noise x NW[magnitude] x (0.5 + 0.5 x early)
            + sum(weight_j x indicator_j) over trap indicators

The two scores are independent; a movement can be high on both. Scoring is
a pure function of (Movement, SignalContext, SignalConfig) so any stored
recommendation can be reproduced from its inputs and config version.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from linesentry.services.errors import MissingDataError
from linesentry.services.movement.detector import Movement, SignalContext
from linesentry.services.odds import clamp
from linesentry.services.signals.config import SignalConfig
from linesentry.services.signals.providers import LINE_MOVEMENT, SHARP, TRAP, SignalProvider

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SignalHit:
    """One indicator that fired."""

    name: str
    kind: str
    value: float
    weight: float

    @property
    def contribution(self) -> float:
        return self.value * self.weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "value": round(self.value, 4),
            "weight": self.weight,
            "contribution": round(self.contribution, 4),
        }


@dataclass
class ScoreResult:
    """Scores with component breakdown."""

    sharp_score: float
    trap_score: float
    sharp_base: float
    trap_noise: float
    signals: list[SignalHit] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def composite_score(self) -> float:
        return self.sharp_score - self.trap_score

    def signal_names(self, kind: str | None = None) -> list[str]:
        return [s.name for s in self.signals if kind is None or s.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sharp_score": self.sharp_score,
            "trap_score": self.trap_score,
            "composite_score": self.composite_score,
            "sharp_base": self.sharp_base,
            "trap_noise": self.trap_noise,
            "signals": [s.to_dict() for s in self.signals],
            "skipped": self.skipped,
        }


def _as_value(raw: bool | float) -> float:
    if isinstance(raw, bool):
        return 1.0 if raw else 0.0
    return clamp(float(raw), 0.0, 1.0)


class SignalScorer:
    """
    Evaluate a provider's indicators against a movement.

    Indicators that lack data (return None or raise MissingDataError) are
    skipped without failing the pass. Indicators with no configured weight
    contribute nothing.
    """

    def __init__(self, provider: SignalProvider = LINE_MOVEMENT):
        self.provider = provider

    @staticmethod
    def base_terms(movement: Movement, config: SignalConfig) -> tuple[float, float]:
        """Magnitude/timing term for sharp and the noise floor for trap."""
        mw = config.movement_weights[movement.magnitude_bucket]
        tw = config.time_weights[movement.time_bucket]
        nw = config.noise_weights[movement.magnitude_bucket]
        early = 1.0 if movement.time_bucket == "early" else 0.0

        sharp_base = config.base_move_sharp * mw * tw
        trap_noise = config.base_noise * nw * (0.5 + 0.5 * early)
        return sharp_base, trap_noise

    def score(
        self, movement: Movement, context: SignalContext, config: SignalConfig
    ) -> ScoreResult:
        sharp_base, trap_noise = self.base_terms(movement, config)
        totals = {SHARP: sharp_base, TRAP: trap_noise}
        hits: list[SignalHit] = []
        skipped: list[str] = []

        for indicator in self.provider.indicators:
            weight = config.weight_for(indicator.kind, indicator.name)
            try:
                raw = indicator.evaluate(movement, context, config)
            except MissingDataError:
                raw = None
            if raw is None:
                skipped.append(indicator.name)
                continue

            value = _as_value(raw)
            if value <= 0 or weight <= 0:
                continue

            hit = SignalHit(name=indicator.name, kind=indicator.kind, value=value, weight=weight)
            hits.append(hit)
            totals[indicator.kind] += hit.contribution

        result = ScoreResult(
            sharp_score=round(totals[SHARP], 4),
            trap_score=round(totals[TRAP], 4),
            sharp_base=round(sharp_base, 4),
            trap_noise=round(trap_noise, 4),
            signals=hits,
            skipped=skipped,
        )

        logger.debug(
            "signals_scored",
            market_key_id=movement.market_key_id,
            sharp_score=result.sharp_score,
            trap_score=result.trap_score,
            signals=result.signal_names(),
            skipped=skipped,
        )
        return result
