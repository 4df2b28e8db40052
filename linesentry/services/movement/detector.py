"""Movement detection.

A Movement is the opening-to-latest delta for one market key. It is never
stored on its own: it is recomputed from the two boundary snapshots, so the
same snapshots always yield the same Movement.

Magnitude is the absolute move on the cents scale (see services.odds).
Time buckets are relative to commence time at the latest snapshot, not
wall-clock now, which keeps recomputation deterministic.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.domain import MarketKey
from linesentry.services.ingestion.snapshots import SnapshotStore
from linesentry.services.odds import cents_delta, implied_probability, safe_div
from linesentry.services.signals.config import (
    MagnitudeThresholds,
    SignalConfig,
    TimeThresholds,
)
from linesentry.services.timing import ensure_utc, hours_until

logger = structlog.get_logger(__name__)


class SnapshotLike(Protocol):
    price: int
    point: object
    captured_at: datetime


def classify_magnitude(magnitude: float, thresholds: MagnitudeThresholds) -> str:
    """
    Map an absolute cents move to its bucket.

    Lower bounds are inclusive: with the default thresholds 49 is large,
    50 is extreme.
    """
    if magnitude >= thresholds.extreme:
        return "extreme"
    if magnitude >= thresholds.large:
        return "large"
    if magnitude >= thresholds.moderate:
        return "moderate"
    if magnitude >= thresholds.small:
        return "small"
    return "minimal"


def classify_time_bucket(hours_to_event: float | None, thresholds: TimeThresholds) -> str:
    """
    Bucket hours-before-commence.

    early > 6h, mid 3-6h, late 1-3h, closing < 1h (including after the
    start), unknown when the commence time is not known.
    """
    if hours_to_event is None:
        return "unknown"
    if hours_to_event > thresholds.early_hours:
        return "early"
    if hours_to_event >= thresholds.mid_hours:
        return "mid"
    if hours_to_event >= thresholds.late_hours:
        return "late"
    return "closing"


def _as_float(value) -> float | None:
    return None if value is None else float(value)


@dataclass(frozen=True)
class Movement:
    """Opening-to-latest delta for one market key."""

    market_key_id: int
    sport: str
    market_type: str
    outcome_name: str

    opening_price: int
    latest_price: int
    opening_point: float | None
    latest_point: float | None
    opened_at: datetime
    latest_at: datetime
    commence_time: datetime | None

    price_delta: int
    point_delta: float | None
    cents_delta: float
    magnitude: float
    magnitude_bucket: str
    time_bucket: str
    hours_to_event: float | None
    implied_delta: float

    @property
    def direction(self) -> int:
        """+1 when the price shortened (move toward this side), -1 when it drifted."""
        if self.implied_delta > 0:
            return 1
        if self.implied_delta < 0:
            return -1
        return 0


def compute_movement(
    market_key: MarketKey,
    opening: SnapshotLike | None,
    latest: SnapshotLike | None,
    config: SignalConfig,
) -> Movement | None:
    """
    Compute the Movement between two snapshots.

    Returns None when there are fewer than two distinct snapshots.
    point_delta is None if either point is NULL.
    """
    if opening is None or latest is None:
        return None
    opened_at = ensure_utc(opening.captured_at)
    latest_at = ensure_utc(latest.captured_at)
    if opened_at >= latest_at:
        return None

    opening_point = _as_float(opening.point)
    latest_point = _as_float(latest.point)
    point_delta = None
    if opening_point is not None and latest_point is not None:
        point_delta = round(latest_point - opening_point, 4)

    delta_cents = cents_delta(opening.price, latest.price)
    magnitude = abs(delta_cents)
    commence_time = ensure_utc(market_key.commence_time)
    hours = hours_until(commence_time, latest_at)

    return Movement(
        market_key_id=market_key.id,
        sport=market_key.sport,
        market_type=market_key.market_type,
        outcome_name=market_key.outcome_name,
        opening_price=opening.price,
        latest_price=latest.price,
        opening_point=opening_point,
        latest_point=latest_point,
        opened_at=opened_at,
        latest_at=latest_at,
        commence_time=commence_time,
        price_delta=latest.price - opening.price,
        point_delta=point_delta,
        cents_delta=delta_cents,
        magnitude=magnitude,
        magnitude_bucket=classify_magnitude(magnitude, config.magnitude_thresholds),
        time_bucket=classify_time_bucket(hours, config.time_thresholds),
        hours_to_event=hours,
        implied_delta=implied_probability(latest.price) - implied_probability(opening.price),
    )


@dataclass(frozen=True)
class PeerMove:
    """Move of a sibling market key (another book, or the opposite outcome)."""

    bookmaker: str
    outcome_name: str
    cents_delta: float
    first_move_at: datetime | None = None


@dataclass(frozen=True)
class SignalContext:
    """Cross-market facts the indicators need besides the Movement itself."""

    books_reporting: int = 1
    books_moved: int = 0
    consensus_ratio: float = 0.0
    move_window_minutes: float | None = None
    opposite_side_moved: bool = False
    public_ticket_pct: float | None = None
    move_started_at: datetime | None = None


def _same_direction(a: float, b: float) -> bool:
    return (a < 0 and b < 0) or (a > 0 and b > 0)


def build_context(
    movement: Movement,
    config: SignalConfig,
    peers: list[PeerMove] | None = None,
    opposite: PeerMove | None = None,
    public_ticket_pct: float | None = None,
    move_started_at: datetime | None = None,
) -> SignalContext:
    """
    Summarize sibling markets into a SignalContext.

    A book counts as moved when it moved at least ``book_move_min_cents``
    in the same direction as this market. The move window spans the first
    move time of every moved book.
    """
    params = config.params
    peers = peers or []

    self_moved = movement.magnitude >= params.book_move_min_cents
    moved_peers = [
        p
        for p in peers
        if abs(p.cents_delta) >= params.book_move_min_cents
        and _same_direction(p.cents_delta, movement.cents_delta)
    ]
    books_reporting = 1 + len(peers)
    books_moved = int(self_moved) + len(moved_peers)

    move_times = [p.first_move_at for p in moved_peers if p.first_move_at is not None]
    if self_moved and move_started_at is not None:
        move_times.append(move_started_at)
    window = None
    if len(move_times) >= 2:
        move_times = [ensure_utc(t) for t in move_times]
        window = (max(move_times) - min(move_times)).total_seconds() / 60

    opposite_moved = (
        opposite is not None
        and abs(opposite.cents_delta) >= params.opposite_min_cents
        and _same_direction(opposite.cents_delta, movement.cents_delta)
    )

    return SignalContext(
        books_reporting=books_reporting,
        books_moved=books_moved,
        consensus_ratio=safe_div(books_moved, books_reporting),
        move_window_minutes=window,
        opposite_side_moved=opposite_moved,
        public_ticket_pct=public_ticket_pct,
        move_started_at=ensure_utc(move_started_at),
    )


class MovementDetector:
    """Loads boundary snapshots and sibling markets for detection."""

    def __init__(self, session: AsyncSession, store: SnapshotStore | None = None):
        self.session = session
        self.store = store or SnapshotStore(session)

    async def detect(self, market_key: MarketKey, config: SignalConfig) -> Movement | None:
        opening = await self.store.opening(market_key.id)
        latest = await self.store.latest(market_key.id)
        movement = compute_movement(market_key, opening, latest, config)
        if movement is None:
            logger.debug("movement_missing_data", market_key_id=market_key.id)
        return movement

    async def _peer_move(self, key: MarketKey) -> PeerMove | None:
        opening = await self.store.opening(key.id)
        latest = await self.store.latest(key.id)
        if opening is None or latest is None:
            return None
        return PeerMove(
            bookmaker=key.bookmaker,
            outcome_name=key.outcome_name,
            cents_delta=cents_delta(opening.price, latest.price),
            first_move_at=await self.store.first_move_at(key.id, opening),
        )

    async def gather_context(
        self, market_key: MarketKey, movement: Movement, config: SignalConfig
    ) -> SignalContext:
        other_books, opposite_sides = await self.store.siblings(market_key)

        peers = []
        for key in other_books:
            peer = await self._peer_move(key)
            if peer is not None:
                peers.append(peer)

        opposite = None
        for key in opposite_sides:
            opposite = await self._peer_move(key)
            if opposite is not None:
                break

        opening = await self.store.opening(market_key.id)
        latest = await self.store.latest(market_key.id)
        return build_context(
            movement,
            config,
            peers=peers,
            opposite=opposite,
            public_ticket_pct=latest.public_ticket_pct if latest else None,
            move_started_at=await self.store.first_move_at(market_key.id, opening),
        )
