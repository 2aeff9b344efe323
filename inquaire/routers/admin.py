"""Operator endpoints for the analysis queue."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from inquaire.config import Settings, get_settings
from inquaire.database import get_db
from inquaire.logging_config import get_logger
from inquaire.schemas.job import AnalysisJobOut, DeadJobList, JobRetryResponse
from inquaire.services.job_service import list_dead_jobs, retry_dead_job
from inquaire.services.job_state import InvalidJobTransitionError

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_TOKEN not configured",
        )
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.get("/jobs/dead", response_model=DeadJobList, dependencies=[Depends(require_admin_token)])
def get_dead_jobs(limit: int = Query(default=50, ge=1, le=500), db: Session = Depends(get_db)):
    jobs = list_dead_jobs(db, limit=limit)
    return DeadJobList(jobs=[AnalysisJobOut.model_validate(job) for job in jobs])


@router.post("/jobs/{job_id}/retry", response_model=JobRetryResponse, dependencies=[Depends(require_admin_token)])
def retry_job(job_id: UUID, db: Session = Depends(get_db)):
    try:
        job = retry_dead_job(db, job_id)
    except LookupError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except InvalidJobTransitionError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info("Dead analysis job re-queued", extra={"context": {"job_id": str(job.id), "inquiry_id": str(job.inquiry_id)}})
    return JobRetryResponse(success=True, message=f"Job {job.id} re-queued")
