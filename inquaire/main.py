import asyncio
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inquaire.config import get_settings
from inquaire.database import SessionLocal
from inquaire.logging_config import get_logger, setup_logging
from inquaire.redis_client import get_redis
from inquaire.routers import admin, inquiries, webhooks
from inquaire.services.ai_analysis_service import build_analyzer
from inquaire.services.analysis_worker import run_analysis_batch, run_reconciliation
from inquaire.services.cache_service import CacheService

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(
    title="Inquaire API",
    description="Chat webhook ingestion and inquiry analysis",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(inquiries.router)
app.include_router(admin.router)

worker_logger = get_logger("analysis_worker")
reconcile_logger = get_logger("reconcile")
_background_tasks: list[asyncio.Task] = []


def _background_loops_enabled() -> bool:
    return not os.environ.get("PYTEST_CURRENT_TEST")


async def _analysis_worker_loop() -> None:
    analyzer = build_analyzer(settings)
    cache = CacheService(
        get_redis(),
        lock_ttl_seconds=settings.cache_lock_ttl_seconds,
        lock_wait_seconds=settings.cache_lock_wait_seconds,
    )
    interval_seconds = max(settings.analysis_worker_interval_seconds, 0.1)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            results = await run_analysis_batch(
                session_factory=SessionLocal,
                analyzer=analyzer,
                cache=cache,
                settings=settings,
            )
            if results["claimed"]:
                worker_logger.info("Analysis worker processed", extra={"context": results})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            worker_logger.error(
                "Analysis worker loop failed",
                extra={"context": {"error": str(exc)}},
            )


async def _reconcile_loop() -> None:
    interval_seconds = max(settings.reconcile_interval_seconds, 1)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            db = SessionLocal()
            try:
                results = run_reconciliation(db, settings)
            finally:
                db.close()
            if any(results.values()):
                reconcile_logger.info("Reconciliation sweep", extra={"context": results})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            reconcile_logger.error(
                "Reconciliation loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_background_loops() -> None:
    if not _background_loops_enabled() or _background_tasks:
        return
    if settings.analysis_worker_enabled:
        _background_tasks.append(asyncio.create_task(_analysis_worker_loop()))
        worker_logger.info("Analysis worker started", extra={"context": {"concurrency": settings.analysis_worker_concurrency}})
    if settings.reconcile_enabled:
        _background_tasks.append(asyncio.create_task(_reconcile_loop()))
        reconcile_logger.info("Reconciliation loop started")


@app.on_event("shutdown")
async def stop_background_loops() -> None:
    for task in _background_tasks:
        task.cancel()
    for task in _background_tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    _background_tasks.clear()


@app.get("/health")
async def health():
    return {"status": "ok"}
