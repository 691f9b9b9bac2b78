from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from auditlog import db, deps
from auditlog.config import CREATE_ALL_ENVS, AppInfo, get_settings
from auditlog.core.logging import get_logger, setup_logging
from auditlog.core.runtime_state import set_scheduler_active
import auditlog.models  # registers the tables
from auditlog.routers import get_api_router
from auditlog.services.cron import drain_buffer_once, prune_once, refresh_scheduler_lease
from auditlog.utils.errors import error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    runtime_settings = get_settings()

    if runtime_settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if runtime_settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=runtime_settings.SENTRY_DSN, traces_sample_rate=0.2)


def _start_scheduler(settings: Any) -> AsyncIOScheduler:
    job_scheduler = AsyncIOScheduler()
    job_scheduler.start()
    job_scheduler.add_job(
        prune_once,
        "interval",
        minutes=settings.PRUNE_INTERVAL_MINUTES,
        id="retention-prune",
        replace_existing=True,
    )
    job_scheduler.add_job(
        drain_buffer_once,
        "interval",
        seconds=settings.BUFFER_DRAIN_INTERVAL_SECONDS,
        id="buffer-drain",
        replace_existing=True,
    )
    job_scheduler.add_job(
        refresh_scheduler_lease,
        "interval",
        seconds=60,
        id="scheduler-lock-heartbeat",
        replace_existing=True,
    )
    return job_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("Application startup", extra={"env": settings.app_env})

    db.init_engine()
    env_lower = settings.app_env.lower()
    if settings.ALLOW_DB_CREATE_ALL and env_lower in CREATE_ALL_ENVS:
        logger.warning(
            "Running Base.metadata.create_all() because AUDITLOG_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info(
            "Skipping create_all(); use Alembic migrations. AUDITLOG_ENV=%s, ALLOW_DB_CREATE_ALL=%s",
            settings.app_env,
            settings.ALLOW_DB_CREATE_ALL,
        )

    # Only the runner holding the lease schedules pruning and draining.
    set_scheduler_active(False)
    lease = deps.get_scheduler_lease()
    lock_acquired = False
    if settings.SCHEDULER_ENABLED:
        lock_acquired = lease.try_acquire()
        if lock_acquired:
            scheduler = _start_scheduler(settings)
            set_scheduler_active(True)
        else:
            logger.warning(
                "Scheduler disabled because lock is already held by another instance.",
                extra={"env": settings.app_env},
            )
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            scheduler = None
        if lock_acquired:
            lease.release()
        set_scheduler_active(False)
        deps.close_connections()
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(get_api_router())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
