"""Scheduled job status and manual triggers."""
from datetime import datetime, timezone

from fastapi import APIRouter

from orderflow.api.deps import AdminActor, Workflow
from orderflow.jobs.scheduler import scheduler, get_job_status
from orderflow.schemas.order import AutoCompletionResponse, JobStatusResponse

router = APIRouter(prefix="/jobs")


@router.get("", response_model=JobStatusResponse)
async def job_status(admin: AdminActor):
    """Scheduler state and next run times."""
    return JobStatusResponse(
        status="running" if scheduler.running else "stopped",
        jobs=get_job_status(),
    )


@router.post("/auto-complete", response_model=AutoCompletionResponse)
async def trigger_auto_completion(
    workflow: Workflow,
    admin: AdminActor,
):
    """Run the auto-completion sweep now (same as the daily job)."""
    run_at = datetime.now(timezone.utc)
    completed = await workflow.run_auto_completion()
    return AutoCompletionResponse(completed=completed, run_at=run_at)
