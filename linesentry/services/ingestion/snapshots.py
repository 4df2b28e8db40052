"""Snapshot store.

Append-only time series of observed prices/lines per market key. Opening
and latest are resolved by captured_at ordering, so late-arriving older
snapshots never disturb them. Duplicate (market key, captured_at) writes are
dropped by ON CONFLICT DO NOTHING.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.base import dialect_insert
from linesentry.models.domain import MarketKey, OddsSnapshot
from linesentry.services.odds import is_valid_price
from linesentry.services.timing import ensure_utc

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MarketKeyData:
    """Natural key of a bettable line, plus descriptive fields set on creation."""

    event_id: str
    sport: str
    bookmaker: str
    market_type: str
    outcome_name: str
    player_name: str | None = None
    description: str | None = None
    commence_time: datetime | None = None

    def natural_key(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "sport": self.sport.upper(),
            "bookmaker": self.bookmaker,
            "market_type": self.market_type,
            "outcome_name": self.outcome_name,
            "player_name": self.player_name or "",
        }


@dataclass(frozen=True)
class SnapshotInput:
    """One observation to record."""

    market_key: MarketKeyData
    price: int
    captured_at: datetime
    point: float | None = None
    public_ticket_pct: float | None = None


@dataclass(frozen=True)
class RecordResult:
    market_key_id: int
    inserted: bool


class SnapshotStore:
    """Reads and appends odds snapshots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_market_key(self, key: MarketKeyData) -> MarketKey | None:
        conditions = [
            getattr(MarketKey, column) == value
            for column, value in key.natural_key().items()
        ]
        result = await self.session.execute(select(MarketKey).where(and_(*conditions)))
        return result.scalar_one_or_none()

    async def get_or_create_market_key(self, key: MarketKeyData) -> MarketKey:
        """Insert the market key if new. Existing keys are never modified."""
        existing = await self.find_market_key(key)
        if existing is not None:
            return existing

        stmt = dialect_insert(self.session, MarketKey).values(
            **key.natural_key(),
            description=key.description,
            commence_time=ensure_utc(key.commence_time),
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[
                "event_id",
                "sport",
                "bookmaker",
                "market_type",
                "outcome_name",
                "player_name",
            ]
        )
        await self.session.execute(stmt)
        return await self.find_market_key(key)

    async def lock_market_key(self, market_key_id: int) -> MarketKey | None:
        """
        Row-lock a market key for the rest of the transaction.

        Serializes snapshot writes against scoring for the same key.
        SQLite ignores FOR UPDATE.
        """
        result = await self.session.execute(
            select(MarketKey).where(MarketKey.id == market_key_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def record_snapshot(
        self,
        market_key: MarketKeyData,
        price: int,
        point: float | None,
        captured_at: datetime,
        public_ticket_pct: float | None = None,
    ) -> RecordResult:
        """
        Append a snapshot.

        Raises:
            ValueError: if price is not valid American odds
        """
        if not is_valid_price(price):
            raise ValueError(f"Invalid American odds: {price}")
        if public_ticket_pct is not None and not 0 <= public_ticket_pct <= 1:
            raise ValueError(f"public_ticket_pct out of range: {public_ticket_pct}")

        key = await self.get_or_create_market_key(market_key)
        await self.lock_market_key(key.id)

        stmt = dialect_insert(self.session, OddsSnapshot).values(
            market_key_id=key.id,
            price=price,
            point=Decimal(str(point)) if point is not None else None,
            public_ticket_pct=public_ticket_pct,
            captured_at=ensure_utc(captured_at),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["market_key_id", "captured_at"])
        result = await self.session.execute(stmt)
        inserted = result.rowcount == 1

        if inserted:
            logger.debug(
                "snapshot_recorded",
                market_key_id=key.id,
                price=price,
                point=point,
                captured_at=captured_at.isoformat(),
            )
        else:
            logger.debug("snapshot_duplicate", market_key_id=key.id)

        return RecordResult(market_key_id=key.id, inserted=inserted)

    async def record_many(self, inputs: list[SnapshotInput]) -> dict[str, Any]:
        """
        Record a batch of snapshots.

        Invalid rows are counted and skipped; the rest of the batch proceeds.
        """
        stats = {
            "received": len(inputs),
            "inserted": 0,
            "duplicates": 0,
            "rejected": 0,
        }
        for item in inputs:
            try:
                result = await self.record_snapshot(
                    item.market_key,
                    item.price,
                    item.point,
                    item.captured_at,
                    item.public_ticket_pct,
                )
            except ValueError as e:
                stats["rejected"] += 1
                logger.warning(
                    "snapshot_rejected",
                    event_id=item.market_key.event_id,
                    bookmaker=item.market_key.bookmaker,
                    error=str(e),
                )
                continue

            if result.inserted:
                stats["inserted"] += 1
            else:
                stats["duplicates"] += 1

        return stats

    async def opening(self, market_key_id: int) -> OddsSnapshot | None:
        """Earliest snapshot by captured_at."""
        result = await self.session.execute(
            select(OddsSnapshot)
            .where(OddsSnapshot.market_key_id == market_key_id)
            .order_by(OddsSnapshot.captured_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest(self, market_key_id: int) -> OddsSnapshot | None:
        """Most recent snapshot by captured_at."""
        result = await self.session.execute(
            select(OddsSnapshot)
            .where(OddsSnapshot.market_key_id == market_key_id)
            .order_by(OddsSnapshot.captured_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def first_move_at(
        self, market_key_id: int, opening: OddsSnapshot | None
    ) -> datetime | None:
        """Timestamp of the first snapshot whose price differs from the opening price."""
        if opening is None:
            return None
        result = await self.session.execute(
            select(func.min(OddsSnapshot.captured_at)).where(
                OddsSnapshot.market_key_id == market_key_id,
                OddsSnapshot.captured_at > opening.captured_at,
                OddsSnapshot.price != opening.price,
            )
        )
        return ensure_utc(result.scalar_one_or_none())

    async def newest_snapshot_id(self, market_key_id: int) -> int | None:
        """
        Id of the most recently inserted snapshot, regardless of captured_at.

        Snapshot inserts take the market key lock, so ids for one key only
        grow relative to anything read under that lock.
        """
        result = await self.session.execute(
            select(func.max(OddsSnapshot.id)).where(
                OddsSnapshot.market_key_id == market_key_id
            )
        )
        return result.scalar_one_or_none()

    async def siblings(
        self, market_key: MarketKey
    ) -> tuple[list[MarketKey], list[MarketKey]]:
        """
        Related market keys for the same event and market.

        Returns:
            (same outcome at other bookmakers, other outcomes at the same bookmaker)
        """
        result = await self.session.execute(
            select(MarketKey).where(
                MarketKey.event_id == market_key.event_id,
                MarketKey.sport == market_key.sport,
                MarketKey.market_type == market_key.market_type,
                MarketKey.player_name == market_key.player_name,
                MarketKey.id != market_key.id,
            )
        )
        other_books = []
        opposite_sides = []
        for key in result.scalars().all():
            if key.outcome_name == market_key.outcome_name:
                other_books.append(key)
            elif key.bookmaker == market_key.bookmaker:
                opposite_sides.append(key)
        return other_books, opposite_sides

    async def active_market_keys(self, since: datetime) -> list[MarketKey]:
        """Market keys with at least one snapshot captured at or after ``since``."""
        recent = (
            select(OddsSnapshot.market_key_id)
            .where(OddsSnapshot.captured_at >= since)
            .distinct()
        )
        result = await self.session.execute(
            select(MarketKey).where(MarketKey.id.in_(recent)).order_by(MarketKey.id)
        )
        return list(result.scalars().all())
