"""Celery tasks for LineSentry.

This module configures Celery and registers all periodic tasks.
"""

from celery import Celery
from celery.schedules import crontab

from linesentry.config import get_settings

settings = get_settings()

celery_app = Celery(
    "linesentry",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "linesentry.tasks.snapshots",
        "linesentry.tasks.scoring",
        "linesentry.tasks.results",
        "linesentry.tasks.verification",
        "linesentry.tasks.calibration",
    ],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task behavior
    task_track_started=True,
    task_time_limit=1800,  # calibration is the longest job
    task_soft_time_limit=1740,
    # Result expiration
    result_expires=3600,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

celery_app.conf.beat_schedule = {
    # Odds capture - every 5 minutes
    "capture-snapshots": {
        "task": "linesentry.tasks.snapshots.capture_snapshots",
        "schedule": 300.0,
        "options": {"expires": 280},
    },
    # Scoring - every 5 minutes
    "score-markets": {
        "task": "linesentry.tasks.scoring.score_markets",
        "schedule": 300.0,
        "options": {"expires": 280},
    },
    # Game scores - every 30 minutes
    "capture-event-results": {
        "task": "linesentry.tasks.results.capture_event_results",
        "schedule": 1800.0,
        "options": {"expires": 1740},
    },
    # Settlement - every 15 minutes
    "settle-recommendations": {
        "task": "linesentry.tasks.verification.settle_recommendations",
        "schedule": 900.0,
        "options": {"expires": 840},
    },
    # Calibration - daily at 06:15 UTC
    "run-calibration": {
        "task": "linesentry.tasks.calibration.run_calibration",
        "schedule": crontab(hour=6, minute=15),
        "options": {"expires": 3600},
    },
}
