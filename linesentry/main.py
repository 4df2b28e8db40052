"""LineSentry FastAPI application.

Odds-movement signal engine: snapshot ingestion, sharp/trap scoring and
self-calibrating confidence.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from linesentry import __version__
from linesentry.api.routes import (
    admin,
    calibration,
    health,
    recommendations,
    signal_config,
    snapshots,
    verification,
)
from linesentry.config import get_settings
from linesentry.services.errors import RecommendationNotFoundError

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "starting_linesentry",
        version=__version__,
        tracked_sports=settings.tracked_sports,
        odds_feed_configured=settings.odds_api_configured,
    )
    yield
    logger.info("shutting_down_linesentry")


app = FastAPI(
    title="LineSentry",
    description="Odds-movement signal engine with self-calibrating confidence",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(snapshots.router)
app.include_router(recommendations.router)
app.include_router(verification.router)
app.include_router(calibration.router)
app.include_router(signal_config.router)
app.include_router(admin.router)


# Error handlers
@app.exception_handler(RecommendationNotFoundError)
async def recommendation_not_found_handler(request: Request, exc: RecommendationNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(500)
async def server_error_handler(request: Request, exc):
    """Custom 500 handler."""
    logger.error("server_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
