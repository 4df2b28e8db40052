"""Snapshot ingestion endpoint."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.api.dependencies import get_db
from linesentry.services.ingestion import MarketKeyData, SnapshotStore

router = APIRouter(prefix="/api/snapshots", tags=["snapshots"])
logger = structlog.get_logger(__name__)


class MarketKeyIn(BaseModel):
    """Natural key of a line."""

    event_id: str
    sport: str
    bookmaker: str
    market_type: str
    outcome_name: str
    player_name: str | None = None
    description: str | None = None
    commence_time: datetime | None = None

    def to_data(self) -> MarketKeyData:
        return MarketKeyData(**self.model_dump())


class SnapshotIn(BaseModel):
    """One odds observation."""

    market_key: MarketKeyIn
    price: int
    point: float | None = None
    captured_at: datetime
    public_ticket_pct: float | None = Field(default=None, ge=0, le=1)


class SnapshotAck(BaseModel):
    market_key_id: int
    inserted: bool


@router.post("", response_model=SnapshotAck)
async def post_snapshot(
    snapshot: SnapshotIn,
    db: AsyncSession = Depends(get_db),
):
    """
    Record a snapshot.

    Idempotent on (market_key, captured_at): a repeat is acknowledged with
    ``inserted: false`` and leaves the stored row unchanged.
    """
    store = SnapshotStore(db)
    try:
        result = await store.record_snapshot(
            snapshot.market_key.to_data(),
            snapshot.price,
            snapshot.point,
            snapshot.captured_at,
            snapshot.public_ticket_pct,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await db.commit()

    return SnapshotAck(market_key_id=result.market_key_id, inserted=result.inserted)
