"""Signal providers.

A provider is a named set of indicator functions, each tagged sharp or trap.
Indicators are pure functions of (Movement, SignalContext, SignalConfig) that
return a bool, a graded float in [0, 1], or None when the inputs they need
are missing. Weights are not part of the indicator; they come from the
SignalConfig so calibration can tune them.

Other engines (player props, consensus trackers) are new providers over the
same pipeline; ``LINE_MOVEMENT`` is the game-line provider.
"""

from collections.abc import Callable
from dataclasses import dataclass

from linesentry.services.errors import MissingDataError
from linesentry.services.movement.detector import Movement, SignalContext
from linesentry.services.signals.config import SignalConfig

SHARP = "sharp"
TRAP = "trap"

IndicatorResult = bool | float | None
IndicatorFn = Callable[[Movement, SignalContext, SignalConfig], IndicatorResult]


@dataclass(frozen=True)
class Indicator:
    name: str
    kind: str
    evaluate: IndicatorFn


class SignalProvider:
    """Registry of indicators making up one engine."""

    def __init__(self, name: str):
        self.name = name
        self._indicators: dict[str, Indicator] = {}

    def indicator(self, name: str, kind: str) -> Callable[[IndicatorFn], IndicatorFn]:
        """Decorator registering ``fn`` under ``name``."""
        if kind not in (SHARP, TRAP):
            raise ValueError(f"Unknown indicator kind: {kind}")

        def register(fn: IndicatorFn) -> IndicatorFn:
            if name in self._indicators:
                raise ValueError(f"Indicator already registered: {name}")
            self._indicators[name] = Indicator(name=name, kind=kind, evaluate=fn)
            return fn

        return register

    @property
    def indicators(self) -> list[Indicator]:
        return list(self._indicators.values())

    def names(self, kind: str) -> list[str]:
        return [i.name for i in self._indicators.values() if i.kind == kind]

    def __len__(self) -> int:
        return len(self._indicators)


def require_point_delta(movement: Movement) -> float:
    """Point delta for point-dependent indicators."""
    if movement.point_delta is None:
        raise MissingDataError(
            f"market key {movement.market_key_id} has no point on both snapshots"
        )
    return movement.point_delta


LINE_MOVEMENT = SignalProvider("line_movement")


# Sharp (informed money)


@LINE_MOVEMENT.indicator("reverse_line_movement", SHARP)
def reverse_line_movement(movement: Movement, ctx: SignalContext, config: SignalConfig):
    """
    Line moves toward the side taking the minority of public tickets.

    Without ticket data, price and point moving in contradictory directions
    stands in for it.
    """
    params = config.params
    if ctx.public_ticket_pct is not None:
        return (
            movement.direction > 0
            and movement.magnitude >= params.book_move_min_cents
            and ctx.public_ticket_pct < params.public_majority_pct
        )

    point_delta = require_point_delta(movement)
    return (movement.cents_delta < -params.rlm_proxy_cents and point_delta > 0) or (
        movement.cents_delta > params.rlm_proxy_cents and point_delta < 0
    )


@LINE_MOVEMENT.indicator("steam_move", SHARP)
def steam_move(movement: Movement, ctx: SignalContext, config: SignalConfig):
    params = config.params
    return (
        movement.magnitude >= params.steam_min_cents
        and ctx.books_moved >= params.steam_min_books
        and ctx.move_window_minutes is not None
        and ctx.move_window_minutes <= params.steam_window_minutes
    )


@LINE_MOVEMENT.indicator("late_money", SHARP)
def late_money(movement: Movement, ctx: SignalContext, config: SignalConfig):
    if movement.magnitude < config.params.book_move_min_cents:
        return 0.0
    if movement.time_bucket == "late":
        return 1.0
    if movement.time_bucket == "closing":
        return 0.5
    return 0.0


@LINE_MOVEMENT.indicator("multi_book_consensus", SHARP)
def multi_book_consensus(movement: Movement, ctx: SignalContext, config: SignalConfig):
    """Graded by the share of reporting books that moved the same way."""
    if ctx.books_moved < config.min_consensus_books:
        return 0.0
    if ctx.consensus_ratio < config.params.consensus_min_ratio:
        return 0.0
    return ctx.consensus_ratio


@LINE_MOVEMENT.indicator("clv_positive", SHARP)
def clv_positive(movement: Movement, ctx: SignalContext, config: SignalConfig):
    """The opening price beats the current one: early takers hold closing-line value."""
    return (
        movement.implied_delta > 0
        and movement.magnitude >= config.params.book_move_min_cents
    )


@LINE_MOVEMENT.indicator("line_and_juice", SHARP)
def line_and_juice(movement: Movement, ctx: SignalContext, config: SignalConfig):
    point_delta = require_point_delta(movement)
    params = config.params
    return (
        abs(point_delta) >= params.point_move_min
        and movement.magnitude >= params.line_juice_min_cents
    )


# Trap (public bait)


@LINE_MOVEMENT.indicator("single_book_only", TRAP)
def single_book_only(movement: Movement, ctx: SignalContext, config: SignalConfig):
    return (
        movement.magnitude >= config.params.book_move_min_cents
        and ctx.books_moved <= 1
    )


@LINE_MOVEMENT.indicator("price_only_move", TRAP)
def price_only_move(movement: Movement, ctx: SignalContext, config: SignalConfig):
    point_delta = require_point_delta(movement)
    params = config.params
    return (
        abs(point_delta) < params.point_move_min
        and movement.magnitude >= params.price_only_min_cents
    )


@LINE_MOVEMENT.indicator("early_morning", TRAP)
def early_morning(movement: Movement, ctx: SignalContext, config: SignalConfig):
    """Far from tip-off, or started in the morning hours (UTC window)."""
    params = config.params
    if movement.magnitude < params.book_move_min_cents:
        return False
    if movement.hours_to_event is not None and movement.hours_to_event >= params.early_morning_hours:
        return True
    started = ctx.move_started_at or movement.latest_at
    return params.early_morning_utc_start <= started.hour < params.early_morning_utc_end


@LINE_MOVEMENT.indicator("both_sides_moved", TRAP)
def both_sides_moved(movement: Movement, ctx: SignalContext, config: SignalConfig):
    return ctx.opposite_side_moved


@LINE_MOVEMENT.indicator("insignificant_move", TRAP)
def insignificant_move(movement: Movement, ctx: SignalContext, config: SignalConfig):
    """A visible juice change that barely shifts the implied probability."""
    params = config.params
    return (
        movement.magnitude >= params.insignificant_cents
        and abs(movement.implied_delta) < params.insignificant_implied_delta
    )


@LINE_MOVEMENT.indicator("favorite_shortening", TRAP)
def favorite_shortening(movement: Movement, ctx: SignalContext, config: SignalConfig):
    return (
        movement.direction > 0
        and movement.latest_price <= config.params.favorite_price
    )


@LINE_MOVEMENT.indicator("market_adjustment", TRAP)
def market_adjustment(movement: Movement, ctx: SignalContext, config: SignalConfig):
    """Point and juice both moved, but so did the other side: the book is re-pricing the market."""
    if not ctx.opposite_side_moved:
        return False
    point_delta = require_point_delta(movement)
    params = config.params
    return (
        abs(point_delta) >= params.point_move_min
        and movement.magnitude >= params.opposite_min_cents
    )


@LINE_MOVEMENT.indicator("steam_no_consensus", TRAP)
def steam_no_consensus(movement: Movement, ctx: SignalContext, config: SignalConfig):
    return (
        movement.magnitude >= config.params.steam_min_cents
        and ctx.books_moved < config.min_consensus_books
    )
