"""Signal configuration endpoints."""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.api.dependencies import get_db, require_admin
from linesentry.services.errors import InvalidConfigError
from linesentry.services.signals import SignalConfigRepository
from linesentry.services.signals.config import merge_config

router = APIRouter(prefix="/api/signal-config", tags=["signal-config"])
logger = structlog.get_logger(__name__)


class SignalConfigResponse(BaseModel):
    """Active config for a sport. ``sport`` is DEFAULT when the sport fell back."""

    sport: str
    version: int
    config_id: int
    config_data: dict[str, Any]


class ConfigVersionResponse(BaseModel):
    """Config version summary."""

    id: int
    sport: str
    version: int
    parent_id: int | None
    created_by: str | None
    notes: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class ConfigUpdate(BaseModel):
    config_data: dict[str, Any]
    notes: str | None = None
    created_by: str = "operator"


@router.get("", response_model=SignalConfigResponse)
async def get_signal_config(
    sport: str,
    db: AsyncSession = Depends(get_db),
):
    """Current weights and thresholds for a sport."""
    config = await SignalConfigRepository(db).get_active(sport)
    await db.commit()
    return SignalConfigResponse(
        sport=config.sport,
        version=config.version,
        config_id=config.config_id,
        config_data=config.to_config_data(),
    )


@router.get("/versions", response_model=list[ConfigVersionResponse])
async def list_config_versions(
    sport: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """List config versions, newest first within each sport."""
    rows = await SignalConfigRepository(db).list_versions(sport)
    return [ConfigVersionResponse.model_validate(row) for row in rows]


@router.put(
    "/{sport}",
    response_model=SignalConfigResponse,
    dependencies=[Depends(require_admin)],
)
async def put_signal_config(
    sport: str,
    update: ConfigUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Write a new config version for a sport.

    The body is merged over the sport's active config, so partial updates
    (a single weight, a threshold) are accepted.
    """
    repo = SignalConfigRepository(db)
    active = await repo.get_active(sport)
    try:
        config = await repo.create_version(
            sport,
            merge_config(active.to_config_data(), update.config_data),
            created_by=update.created_by,
            notes=update.notes,
        )
    except InvalidConfigError as e:
        await db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    await db.commit()

    logger.info("signal_config_updated", sport=config.sport, version=config.version)
    return SignalConfigResponse(
        sport=config.sport,
        version=config.version,
        config_id=config.config_id,
        config_data=config.to_config_data(),
    )
