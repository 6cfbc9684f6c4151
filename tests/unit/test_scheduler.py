"""
Unit tests for the scheduler module.

Tests verify scheduler creation, job wiring, startup execution, the
expired-document cleanup hook and signal handler registration without
starting the blocking loop.
"""

from __future__ import annotations

import signal
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from evisa_lifecycle.railway import ErrorCode, Result
from evisa_lifecycle.scheduler import JOB_ID, create_scheduler


@pytest.fixture()
def mock_signal() -> Iterator[MagicMock]:
    with patch("evisa_lifecycle.scheduler.signal.signal") as mocked:
        yield mocked


class TestCreateScheduler:
    """Verify scheduler factory configuration."""

    def test_creates_scheduler_with_job(self, mock_signal: MagicMock) -> None:
        """
        GIVEN a refresh function
        WHEN create_scheduler is called
        THEN the returned scheduler has exactly one job configured.
        """
        job_fn = MagicMock(return_value=Result.success(2))
        scheduler = create_scheduler(job_fn, cron="0 */6 * * *", run_on_startup=False)

        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].id == JOB_ID == "visa_statistics_refresh"

    def test_uses_cron_trigger(self, mock_signal: MagicMock) -> None:
        job_fn = MagicMock(return_value=Result.success(2))
        scheduler = create_scheduler(job_fn, cron="0 2 * * *", run_on_startup=False)

        assert isinstance(scheduler.get_jobs()[0].trigger, CronTrigger)

    def test_run_on_startup_executes_job_immediately(self, mock_signal: MagicMock) -> None:
        job_fn = MagicMock(return_value=Result.success(3))
        create_scheduler(job_fn, run_on_startup=True)

        job_fn.assert_called_once()

    def test_run_on_startup_false_does_not_execute(self, mock_signal: MagicMock) -> None:
        job_fn = MagicMock(return_value=Result.success(0))
        create_scheduler(job_fn, run_on_startup=False)

        job_fn.assert_not_called()

    def test_startup_survives_failure_and_exception(self, mock_signal: MagicMock) -> None:
        """
        GIVEN a refresh that fails and a cleanup that raises
        WHEN run_on_startup executes
        THEN the scheduler is still created.
        """
        job_fn = MagicMock(return_value=Result.failure(ErrorCode.DATABASE_ERROR, "down"))
        cleanup_fn = MagicMock(side_effect=RuntimeError("boom"))
        scheduler = create_scheduler(job_fn, run_on_startup=True, cleanup_fn=cleanup_fn)

        job_fn.assert_called_once()
        cleanup_fn.assert_called_once()
        assert scheduler is not None

    def test_cleanup_runs_after_refresh(self, mock_signal: MagicMock) -> None:
        calls: list[str] = []
        create_scheduler(
            lambda: calls.append("refresh") or Result.success(1),
            run_on_startup=True,
            cleanup_fn=lambda: calls.append("cleanup") or Result.success(0),
        )
        assert calls == ["refresh", "cleanup"]

    def test_registers_signal_handlers(self, mock_signal: MagicMock) -> None:
        job_fn = MagicMock(return_value=Result.success(0))
        create_scheduler(job_fn, run_on_startup=False)

        registered = {call.args[0] for call in mock_signal.call_args_list}
        assert {signal.SIGINT, signal.SIGTERM} <= registered

    def test_background_scheduler_leaves_signals_alone(self, mock_signal: MagicMock) -> None:
        """
        GIVEN a BackgroundScheduler supplied by the caller (ASGI server)
        WHEN create_scheduler is called
        THEN the same scheduler is returned and no signal handlers are installed.
        """
        background = BackgroundScheduler()
        job_fn = MagicMock(return_value=Result.success(0))
        scheduler = create_scheduler(job_fn, run_on_startup=False, scheduler=background)

        assert scheduler is background
        mock_signal.assert_not_called()
