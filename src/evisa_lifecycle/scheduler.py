"""
Scheduler — periodic recomputation of visa-type statistics.

Infrastructure layer — uses APScheduler (3.x) for lightweight in-process
scheduling driven by a standard 5-field cron expression.

The job runs inside a LoggingExecutionContext for timing and outcome
logging. Each run also purges expired registry documents when a cleanup
function is supplied.

Graceful shutdown: handles SIGINT/SIGTERM to stop the scheduler cleanly.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable

import structlog
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from evisa_lifecycle.railway import LoggingExecutionContext, Result

log = structlog.get_logger()

JOB_ID = "visa_statistics_refresh"


def create_scheduler(
    job_fn: Callable[[], Result[int]],
    cron: str = "0 * * * *",
    run_on_startup: bool = True,
    cleanup_fn: Callable[[], Result[int]] | None = None,
    scheduler: BaseScheduler | None = None,
) -> BaseScheduler:
    """
    Create a configured APScheduler that refreshes statistics on a cron schedule.

    Args:
        job_fn: Zero-argument callable returning Result[int] (visa types refreshed).
        cron: Standard 5-field cron expression (minute hour dom month dow).
        run_on_startup: If True, execute once immediately before entering the loop.
        cleanup_fn: Optional expired-document purge run after each refresh.
        scheduler: Scheduler to configure; a BlockingScheduler with SIGINT/SIGTERM
            handlers when omitted. A supplied scheduler gets no signal handlers.

    Returns:
        The configured scheduler (call .start() to begin).
    """
    owns_process = scheduler is None
    scheduler = scheduler or BlockingScheduler()
    refresh_ctx = LoggingExecutionContext(operation="VisaStatisticsRefresh")
    cleanup_ctx = LoggingExecutionContext(operation="ExpiredDocumentCleanup")

    def _job() -> None:
        result = refresh_ctx.execute(job_fn)
        if result.is_success():
            log.info("scheduler.job_completed", visa_types_refreshed=result.value())
        else:
            log.error("scheduler.job_failed", failure=str(result.error()))

        if cleanup_fn is not None:
            cleaned = cleanup_ctx.execute(cleanup_fn)
            if cleaned.is_success():
                log.info("scheduler.cleanup_completed", documents_deleted=cleaned.value())
            else:
                log.error("scheduler.cleanup_failed", failure=str(cleaned.error()))

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        _job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id=JOB_ID,
        name="Visa type statistics refresh",
        replace_existing=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run", message="Refreshing statistics immediately on startup")
        _job()

    if owns_process:
        _register_shutdown_signals(scheduler)

    return scheduler


def _register_shutdown_signals(scheduler: BaseScheduler) -> None:
    """Register SIGINT and SIGTERM handlers for graceful shutdown."""

    def _shutdown(signum: int, frame: object) -> None:
        sig_name = signal.Signals(signum).name
        log.info("scheduler.shutdown_requested", signal=sig_name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
