"""
FastAPI + Uvicorn ASGI application — operational surface only.

Runs the statistics refresh on a background APScheduler while Uvicorn
serves probes and a handful of operator endpoints:

  GET  /health                    liveness: scheduler running, no startup error
  GET  /ready                     readiness: services wired, first refresh done
  GET  /info                      metadata
  POST /trigger                   recompute statistics for every visa type now
  GET  /statistics/status-counts  application counts per status

Business operations (create, submit, approve, ...) are library calls on
the services built in `evisa_lifecycle.main`; they have no HTTP routes here.

Entry point: uvicorn evisa_lifecycle.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from evisa_lifecycle import __version__
from evisa_lifecycle.config import AppSettings
from evisa_lifecycle.main import Services, build_services, configure_structlog, prepare_storage
from evisa_lifecycle.railway import FailureDescription
from evisa_lifecycle.railway.http_support import ErrorResponse, HttpStatusMapper
from evisa_lifecycle.scheduler import create_scheduler

# ─────────────────────── Global State ───────────────────────
# Set during app startup and read by the probes.

_scheduler: BackgroundScheduler | None = None
_services: Services | None = None
_ready = False
_error_message: str | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: wire services, start the scheduler. Shutdown: stop it."""
    global _scheduler, _services, _ready, _error_message

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)
    log.info(
        "asgi.startup_config",
        version=__version__,
        storage_backend=settings.storage_backend,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    prepared = await asyncio.to_thread(prepare_storage, settings)
    if prepared.is_failure():
        _error_message = f"Storage unavailable: {prepared.error()}"
        log.error("asgi.init_error", error=_error_message)
        raise RuntimeError(_error_message)

    _services = build_services(settings)
    _scheduler = create_scheduler(
        job_fn=_services.statistics.recompute_all,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
        cleanup_fn=_services.registry.cleanup_expired,
        scheduler=BackgroundScheduler(),
    )
    _scheduler.start()
    _ready = True
    log.info("asgi.startup_complete")

    yield

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    try:
        _scheduler.shutdown(wait=True)
        log.info("asgi.scheduler_shutdown_complete")
    except Exception as e:
        log.warning("asgi.scheduler_shutdown_error", error=str(e))
    _ready = False


app = FastAPI(
    title="evisa-lifecycle",
    description="e-Visa application lifecycle engine — operational endpoints",
    version=__version__,
    lifespan=lifespan,
)


def _failure_response(failure: FailureDescription) -> JSONResponse:
    return JSONResponse(
        status_code=HttpStatusMapper.map_failure(failure),
        content={"status": "failed", **ErrorResponse.from_failure(failure).to_dict()},
    )


def _scheduler_running() -> bool:
    return _scheduler is not None and _scheduler.running


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe — 503 after a startup error or when the scheduler stopped."""
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )
    if not _scheduler_running():
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "scheduler not running"},
        )
    return JSONResponse(status_code=200, content={"status": "healthy", "scheduler_running": True})


@app.get("/ready")
async def ready() -> JSONResponse:
    """Readiness probe — 202 while starting, 503 on error, 200 once wired."""
    if _error_message:
        return JSONResponse(status_code=503, content={"status": "error", "error": _error_message})
    if not _ready or _services is None:
        return JSONResponse(status_code=202, content={"status": "starting"})
    return JSONResponse(
        status_code=200,
        content={"status": "ready", "scheduler_running": _scheduler_running()},
    )


@app.get("/info")
async def info() -> dict[str, Any]:
    return {
        "name": "evisa-lifecycle",
        "version": __version__,
        "scheduler_running": _scheduler_running(),
        "ready": _ready,
        "has_error": _error_message is not None,
    }


@app.post("/trigger")
async def trigger() -> JSONResponse:
    """
    Recompute statistics for every visa type now.

    Runs in a worker thread so the event loop is not blocked.
    Returns 200 with the number of visa types refreshed, the mapped error
    status on failure, 503 before startup completed.
    """
    if _services is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "reason": "Services not initialized"},
        )

    log.info("trigger.manual_start", source="REST")
    try:
        result = await asyncio.to_thread(_services.statistics.recompute_all)
    except Exception as e:
        log.error("trigger.exception", error=str(e))
        return JSONResponse(status_code=500, content={"status": "error", "error": str(e)})

    if result.is_success():
        refreshed = result.value()
        log.info("trigger.completed", visa_types_refreshed=refreshed)
        return JSONResponse(
            status_code=200,
            content={"status": "success", "visa_types_refreshed": refreshed},
        )

    failure = result.error()
    log.error("trigger.refresh_failed", failure=str(failure))
    return _failure_response(failure)


@app.get("/statistics/status-counts")
async def status_counts() -> JSONResponse:
    if _services is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "reason": "Services not initialized"},
        )
    result = await asyncio.to_thread(_services.statistics.status_counts)
    if result.is_failure():
        return _failure_response(result.error())
    return JSONResponse(status_code=200, content={"counts": result.value()})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "evisa_lifecycle.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
