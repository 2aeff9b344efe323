"""Analysis worker: claims queued jobs, analyses inquiries, writes results back."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from inquaire.config import Settings
from inquaire.logging_config import get_logger
from inquaire.models import Business, Channel, Customer, IndustryConfig, Inquiry, IndustryType
from inquaire.services.ai_analysis_service import InquiryAnalyzer
from inquaire.services.alert_service import alert_dead_job
from inquaire.services.audit_service import record_error_log
from inquaire.services.cache_service import CacheService
from inquaire.services.inquiry_service import apply_analysis
from inquaire.services.job_service import (
    claim_analysis_jobs,
    enqueue_missing_jobs,
    mark_job_completed,
    requeue_stale_jobs,
    schedule_job_retry,
)
from inquaire.services.job_state import JobStatus
from inquaire.services.reply_service import send_platform_reply
from inquaire.services.stats_service import invalidate_stats_cache

logger = get_logger("analysis_worker")

SessionFactory = Callable[[], Session]


def _industry_prompt_override(db: Session, industry_type: str):
    config = db.query(IndustryConfig).filter(IndustryConfig.industry_type == industry_type).first()
    return config.system_prompt if config else None


async def _send_auto_reply(db: Session, inquiry_id, reply_text: str, settings: Settings) -> None:
    inquiry = db.get(Inquiry, inquiry_id)
    channel = db.get(Channel, inquiry.channel_id) if inquiry else None
    if not channel or not channel.auto_reply_enabled or not reply_text:
        return
    customer = db.get(Customer, inquiry.customer_id)
    if not customer:
        return
    sent = await asyncio.to_thread(send_platform_reply, channel, customer.platform_user_id, reply_text, settings)
    if sent:
        inquiry.replied_at = datetime.now(timezone.utc)
        db.commit()


async def process_analysis_job(
    job: dict[str, Any],
    *,
    session_factory: SessionFactory,
    analyzer: InquiryAnalyzer,
    cache: CacheService,
    settings: Settings,
) -> str:
    """Run one claimed job. Returns completed, skipped, retry_scheduled or dead."""
    db = session_factory()
    context = {
        "job_id": str(job["id"]),
        "inquiry_id": str(job["inquiry_id"]),
        "attempt": job["attempt"],
    }
    try:
        inquiry = db.get(Inquiry, job["inquiry_id"])
        if inquiry is None or inquiry.deleted_at is not None:
            logger.warning("Inquiry missing or deleted, skipping analysis", extra={"context": context})
            mark_job_completed(db, job["id"])
            return "skipped"
        if inquiry.analyzed_at is not None:
            logger.warning("Inquiry already analyzed, skipping", extra={"context": context})
            mark_job_completed(db, job["id"])
            return "skipped"

        business = db.get(Business, inquiry.business_id)
        industry_type = business.industry_type if business else IndustryType.OTHER.value
        prompt_override = _industry_prompt_override(db, industry_type)
        message_text = inquiry.message_text
        # Release the read transaction before the slow provider call.
        db.commit()

        outcome = await analyzer.analyze(
            message_text,
            industry_type=industry_type,
            system_prompt=prompt_override,
        )
        analysis = outcome.analysis.to_dict()
        applied = apply_analysis(
            db,
            inquiry_id=inquiry.id,
            analysis=analysis,
            model=outcome.model,
            processing_time_ms=outcome.processing_time_ms,
        )
        held = mark_job_completed(db, job["id"])
    except Exception as exc:
        return _handle_job_failure(db, job, exc, settings)
    finally:
        db.close()

    if not held:
        logger.warning("Analysis job lease lost before completion, result kept", extra={"context": context})
    if not applied:
        logger.warning("Inquiry analyzed concurrently, result discarded", extra={"context": context})
        return "skipped"

    logger.info(
        "Analysis job completed",
        extra={"context": {**context, "degraded": outcome.degraded, "processing_time_ms": outcome.processing_time_ms}},
    )
    await invalidate_stats_cache(cache, job["business_id"])

    reply_db = session_factory()
    try:
        await _send_auto_reply(reply_db, job["inquiry_id"], analysis.get("suggested_reply") or "", settings)
    except Exception as exc:
        logger.error("Auto-reply failed", extra={"context": {**context, "error": str(exc)}})
    finally:
        reply_db.close()
    return "completed"


def _handle_job_failure(db: Session, job: dict[str, Any], exc: Exception, settings: Settings) -> str:
    db.rollback()
    error = f"{type(exc).__name__}: {exc}"
    outcome = schedule_job_retry(
        db,
        job["id"],
        error=error,
        base_seconds=settings.analysis_retry_base_seconds,
        max_seconds=settings.analysis_retry_max_seconds,
    )
    context = {"job_id": str(job["id"]), "inquiry_id": str(job["inquiry_id"]), "attempt": job["attempt"], "error": error}
    if outcome is None:
        logger.warning("Analysis job failed after its lease was lost", extra={"context": context})
        return "lease_lost"
    status, delay = outcome
    if status == JobStatus.DEAD:
        logger.error("Analysis job dead, attempts exhausted", extra={"context": context})
        record_error_log(db, error_type="ANALYSIS_JOB", error=exc, context=context)
        alert_dead_job(job, error, settings=settings)
        return "dead"

    logger.warning("Analysis job failed, retry scheduled", extra={"context": {**context, "retry_in_seconds": delay}})
    return "retry_scheduled"


async def run_analysis_batch(
    *,
    session_factory: SessionFactory,
    analyzer: InquiryAnalyzer,
    cache: CacheService,
    settings: Settings,
) -> dict[str, int]:
    db = session_factory()
    try:
        jobs = claim_analysis_jobs(db, limit=settings.analysis_worker_batch_size)
    finally:
        db.close()

    results = {
        "claimed": len(jobs),
        "completed": 0,
        "skipped": 0,
        "retry_scheduled": 0,
        "dead": 0,
        "lease_lost": 0,
        "errors": 0,
    }
    if not jobs:
        return results

    semaphore = asyncio.Semaphore(settings.analysis_worker_concurrency)

    async def _guarded(job: dict[str, Any]) -> str:
        async with semaphore:
            return await process_analysis_job(
                job,
                session_factory=session_factory,
                analyzer=analyzer,
                cache=cache,
                settings=settings,
            )

    outcomes = await asyncio.gather(*(_guarded(job) for job in jobs), return_exceptions=True)
    for job, outcome in zip(jobs, outcomes):
        if isinstance(outcome, Exception):
            logger.error(
                "Analysis job crashed",
                exc_info=outcome,
                extra={"context": {"job_id": str(job["id"]), "error": str(outcome)}},
            )
            results["errors"] += 1
            continue
        results[outcome] += 1
    return results


def run_reconciliation(db: Session, settings: Settings) -> dict[str, int]:
    stale = requeue_stale_jobs(
        db,
        lease_seconds=settings.analysis_job_lease_seconds,
        base_seconds=settings.analysis_retry_base_seconds,
        max_seconds=settings.analysis_retry_max_seconds,
    )
    enqueued = enqueue_missing_jobs(
        db,
        grace_seconds=settings.reconcile_grace_seconds,
        limit=settings.reconcile_batch_size,
        max_attempts=settings.analysis_max_attempts,
    )
    return {**stale, "enqueued": enqueued}
