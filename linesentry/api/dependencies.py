"""FastAPI dependencies for LineSentry."""

import secrets
from collections.abc import AsyncGenerator

import redis.asyncio as redis
import structlog
from fastapi import Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.config import get_settings
from linesentry.models.base import async_session_factory

logger = structlog.get_logger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_redis() -> AsyncGenerator[redis.Redis, None]:
    """Get Redis client dependency."""
    settings = get_settings()
    client = redis.from_url(settings.redis_url)
    try:
        yield client
    finally:
        await client.aclose()


async def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    """
    Guard for administrative writes.

    Denies when no admin token is configured, so config changes are never
    open by default.
    """
    expected = get_settings().admin_token
    if not expected or not x_admin_token or not secrets.compare_digest(
        x_admin_token, expected
    ):
        logger.warning("admin_auth_denied", token_present=bool(x_admin_token))
        raise HTTPException(status_code=403, detail="Admin token required")
