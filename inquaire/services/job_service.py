"""Durable analysis job queue on the analysis_jobs table."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from inquaire.database import dialect_insert
from inquaire.logging_config import get_logger
from inquaire.models import AnalysisJob, Inquiry, InquiryStatus
from inquaire.services.job_state import InvalidJobTransitionError, JobStatus, bury, complete, retry, start

logger = get_logger("job_service")

DEFAULT_MAX_ATTEMPTS = 3


def compute_backoff_seconds(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Delay before the next try after ``attempt`` failed: base * 2**attempt, capped."""
    return min(base_seconds * (2 ** max(attempt, 0)), max_seconds)


def _job_row(job: AnalysisJob) -> dict[str, Any]:
    return {
        "id": job.id,
        "inquiry_id": job.inquiry_id,
        "business_id": job.business_id,
        "attempt": job.attempt,
        "max_attempts": job.max_attempts,
    }


def enqueue_analysis_job(
    db: Session,
    *,
    inquiry_id,
    business_id,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    now: datetime | None = None,
) -> bool:
    """Queue analysis for an inquiry. False when a job for it already exists."""
    now = now or datetime.now(timezone.utc)
    insert = dialect_insert(db)
    stmt = (
        insert(AnalysisJob)
        .values(
            id=uuid.uuid4(),
            inquiry_id=inquiry_id,
            business_id=business_id,
            status=JobStatus.PENDING.value,
            attempt=1,
            max_attempts=max_attempts,
            next_attempt_at=now,
            enqueued_at=now,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["inquiry_id"])
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount > 0


def claim_analysis_jobs(db: Session, *, limit: int = 10, now: datetime | None = None) -> list[dict[str, Any]]:
    """Move due PENDING jobs to RUNNING and return plain snapshots of them."""
    now = now or datetime.now(timezone.utc)
    jobs = (
        db.query(AnalysisJob)
        .filter(
            AnalysisJob.status == JobStatus.PENDING.value,
            or_(AnalysisJob.next_attempt_at.is_(None), AnalysisJob.next_attempt_at <= now),
        )
        .order_by(AnalysisJob.enqueued_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )
    for job in jobs:
        job.status = start(JobStatus(job.status)).value
        job.locked_at = now
        job.updated_at = now
    db.commit()
    return [_job_row(job) for job in jobs]


def _still_running(job: AnalysisJob | None, job_id, action: str) -> bool:
    """False when the job left RUNNING under us (lease reaped or operator action)."""
    if job is None:
        return False
    if job.status != JobStatus.RUNNING.value:
        logger.warning(
            "Analysis job no longer running, skipping " + action,
            extra={"context": {"job_id": str(job_id), "status": job.status}},
        )
        return False
    return True


def mark_job_completed(db: Session, job_id, *, now: datetime | None = None) -> bool:
    """Complete a RUNNING job. False when the job is missing or no longer held."""
    now = now or datetime.now(timezone.utc)
    job = db.get(AnalysisJob, job_id, populate_existing=True)
    if not _still_running(job, job_id, "completion"):
        db.rollback()
        return False
    job.status = complete(JobStatus(job.status)).value
    job.completed_at = now
    job.locked_at = None
    job.last_error = None
    job.updated_at = now
    db.commit()
    return True


def schedule_job_retry(
    db: Session,
    job_id,
    *,
    error: str,
    base_seconds: float,
    max_seconds: float,
    now: datetime | None = None,
) -> tuple[JobStatus, float | None] | None:
    """Record a failed attempt: back to PENDING with backoff, or DEAD once attempts run out.

    Returns None and leaves the row alone when the job is no longer RUNNING.
    """
    now = now or datetime.now(timezone.utc)
    job = db.get(AnalysisJob, job_id, populate_existing=True)
    if job is None:
        raise LookupError(f"Analysis job {job_id} not found")
    if not _still_running(job, job_id, "retry"):
        db.rollback()
        return None

    current = JobStatus(job.status)
    job.last_error = error[:500]
    job.locked_at = None
    job.updated_at = now

    if job.attempt >= job.max_attempts:
        job.status = bury(current).value
        job.next_attempt_at = None
        db.commit()
        return JobStatus.DEAD, None

    delay = compute_backoff_seconds(job.attempt, base_seconds, max_seconds)
    job.status = retry(current).value
    job.attempt = job.attempt + 1
    job.next_attempt_at = now + timedelta(seconds=delay)
    db.commit()
    return JobStatus.PENDING, delay


def requeue_stale_jobs(
    db: Session,
    *,
    lease_seconds: int,
    base_seconds: float,
    max_seconds: float,
    now: datetime | None = None,
) -> dict[str, int]:
    """Treat RUNNING jobs whose lease expired as failed attempts (worker crashed mid-job)."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=lease_seconds)
    stale_ids = list(
        db.execute(
            select(AnalysisJob.id).where(
                AnalysisJob.status == JobStatus.RUNNING.value,
                AnalysisJob.locked_at < cutoff,
            )
        ).scalars()
    )
    results = {"requeued": 0, "dead": 0}
    for job_id in stale_ids:
        outcome = schedule_job_retry(
            db,
            job_id,
            error="lease_expired",
            base_seconds=base_seconds,
            max_seconds=max_seconds,
            now=now,
        )
        if outcome is None:
            continue
        results["dead" if outcome[0] == JobStatus.DEAD else "requeued"] += 1
    return results


def enqueue_missing_jobs(
    db: Session,
    *,
    grace_seconds: int,
    limit: int = 100,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    now: datetime | None = None,
) -> int:
    """Queue jobs for NEW un-analyzed inquiries that never got one."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=grace_seconds)
    has_job = select(AnalysisJob.id).where(AnalysisJob.inquiry_id == Inquiry.id).exists()
    orphans = db.execute(
        select(Inquiry.id, Inquiry.business_id)
        .where(
            Inquiry.status == InquiryStatus.NEW.value,
            Inquiry.analyzed_at.is_(None),
            Inquiry.deleted_at.is_(None),
            Inquiry.received_at <= cutoff,
            ~has_job,
        )
        .order_by(Inquiry.received_at)
        .limit(limit)
    ).all()

    enqueued = 0
    for inquiry_id, business_id in orphans:
        if enqueue_analysis_job(db, inquiry_id=inquiry_id, business_id=business_id, max_attempts=max_attempts, now=now):
            enqueued += 1
    if enqueued:
        logger.warning(
            "Reconciliation enqueued missing analysis jobs",
            extra={"context": {"enqueued": enqueued}},
        )
    return enqueued


def list_dead_jobs(db: Session, *, limit: int = 50) -> list[AnalysisJob]:
    return (
        db.query(AnalysisJob)
        .filter(AnalysisJob.status == JobStatus.DEAD.value)
        .order_by(AnalysisJob.updated_at.desc())
        .limit(limit)
        .all()
    )


def retry_dead_job(db: Session, job_id, *, now: datetime | None = None) -> AnalysisJob:
    """Operator action: give a DEAD job a fresh set of attempts."""
    now = now or datetime.now(timezone.utc)
    job = db.get(AnalysisJob, job_id, populate_existing=True)
    if job is None:
        raise LookupError(f"Analysis job {job_id} not found")
    current = JobStatus(job.status)
    if current != JobStatus.DEAD:
        raise InvalidJobTransitionError(current, JobStatus.PENDING)
    job.status = retry(current).value
    job.attempt = 1
    job.next_attempt_at = now
    job.locked_at = None
    job.updated_at = now
    db.commit()
    return job
