"""System API: health check, scheduler status, job logs, manual job trigger."""

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from backend.api.deps import ok
from backend.database import get_session
from backend.exceptions import NotFoundError
from backend.models.job_log import JobLog

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler")
def scheduler_status():
    """Current scheduler state with job details."""
    from backend.engine.scheduler import get_scheduler_status
    return ok(get_scheduler_status())


@router.post("/trigger/{job_name}")
async def trigger_job(job_name: str):
    """Manually run one of the scheduled jobs now, bypassing market-hours checks."""
    from backend.engine.jobs import JOBS

    job = JOBS.get(job_name)
    if job is None:
        raise NotFoundError(f"Unknown job '{job_name}'", details={"jobs": sorted(JOBS)})
    result = await (job() if job_name == "custody_fee" else job(force=True))
    return ok(result, message=result.get("message"))


@router.get("/logs")
def job_logs(
    job_name: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(JobLog).order_by(JobLog.timestamp.desc())
    if job_name is not None:
        stmt = stmt.where(JobLog.job_name == job_name)
    if status is not None:
        stmt = stmt.where(JobLog.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return ok(session.exec(stmt).all())
