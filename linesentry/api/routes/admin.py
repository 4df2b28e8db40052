"""Admin API endpoints.

Manual task triggers. Every endpoint requires the X-Admin-Token header.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from linesentry.api.dependencies import require_admin

router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)
logger = structlog.get_logger(__name__)


class TaskTriggerResponse(BaseModel):
    """Response from task trigger."""

    task_name: str
    task_id: str
    status: str
    message: str


# Friendly names to Celery task names
TASK_MAP = {
    "capture-snapshots": "linesentry.tasks.snapshots.capture_snapshots",
    "score-markets": "linesentry.tasks.scoring.score_markets",
    "capture-event-results": "linesentry.tasks.results.capture_event_results",
    "settle-recommendations": "linesentry.tasks.verification.settle_recommendations",
    "run-calibration": "linesentry.tasks.calibration.run_calibration",
}


@router.post("/trigger-task/{task_name}", response_model=TaskTriggerResponse)
async def trigger_task(task_name: str) -> TaskTriggerResponse:
    """
    Manually trigger a background task.

    Available tasks:
    - capture-snapshots: Poll the odds feed for tracked sports
    - score-markets: Score market keys with recent snapshots
    - capture-event-results: Fetch game scores
    - settle-recommendations: Verify recommendations with final scores
    - run-calibration: Rebuild buckets and tune signal configs
    """
    if task_name not in TASK_MAP:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown task: {task_name}. Available: {list(TASK_MAP.keys())}",
        )

    celery_task_name = TASK_MAP[task_name]

    try:
        from linesentry.tasks import celery_app

        result = celery_app.send_task(celery_task_name)

        logger.info(
            "task_triggered_manually",
            task_name=task_name,
            celery_task=celery_task_name,
            task_id=result.id,
        )

        return TaskTriggerResponse(
            task_name=task_name,
            task_id=result.id,
            status="submitted",
            message=f"Task {task_name} submitted. Check Celery logs for progress.",
        )

    except Exception as e:
        logger.error(
            "task_trigger_failed",
            task_name=task_name,
            error=str(e),
        )
        raise HTTPException(
            status_code=500,
            detail=f"Failed to trigger task: {str(e)}",
        )


@router.get("/tasks", response_model=dict[str, str])
async def list_tasks() -> dict[str, str]:
    """List all available tasks that can be triggered manually."""
    return TASK_MAP
