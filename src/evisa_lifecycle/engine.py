"""
Lifecycle engine — executes status transitions against storage.

    load application
      → apply_transition (reachability, actor, guards; new value + history entry)
        → compare-and-set write on the (version, status) that was read
          → publish LifecycleEvent (best effort)

The event is only built after the write succeeded. Publishing never holds
a lock and never changes the outcome: a failure (or an exception raised by
the publisher) is logged and the stored transition stands.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from evisa_lifecycle.domain.lifecycle import TransitionRequest, apply_transition
from evisa_lifecycle.domain.models import (
    Actor,
    Application,
    ApplicationStatus,
    InterviewInfo,
    LifecycleEvent,
    utc_now,
)
from evisa_lifecycle.domain.ports import ApplicationRepository, EventPublisher
from evisa_lifecycle.railway import ErrorCode, Result

log = structlog.get_logger()

S = ApplicationStatus


class LifecycleEngine:
    def __init__(
        self,
        applications: ApplicationRepository,
        publisher: EventPublisher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._applications = applications
        self._publisher = publisher
        self._clock = clock

    def transition(self, application_number: str, request: TransitionRequest) -> Result[Application]:
        return self._applications.get(application_number).flat_map(
            lambda app: self._execute(app, request)
        )

    # ─────────────────────── named transitions ───────────────────────

    def submit(self, actor: Actor, application_number: str, note: str = "") -> Result[Application]:
        return self.transition(
            application_number, TransitionRequest(S.SUBMITTED, actor, note or "Application submitted")
        )

    def start_review(
        self, actor: Actor, application_number: str, note: str = ""
    ) -> Result[Application]:
        """Staff pick up a submitted application, or resume after extra documents."""
        return self.transition(application_number, TransitionRequest(S.UNDER_REVIEW, actor, note))

    def request_additional_documents(
        self, actor: Actor, application_number: str, note: str
    ) -> Result[Application]:
        return self.transition(
            application_number, TransitionRequest(S.ADDITIONAL_DOCS_REQUIRED, actor, note)
        )

    def schedule_interview(
        self,
        actor: Actor,
        application_number: str,
        interview: InterviewInfo | None = None,
        note: str = "",
    ) -> Result[Application]:
        return self.transition(
            application_number,
            TransitionRequest(S.INTERVIEW_SCHEDULED, actor, note, interview=interview),
        )

    def approve(self, actor: Actor, application_number: str, note: str = "") -> Result[Application]:
        return self.transition(application_number, TransitionRequest(S.APPROVED, actor, note))

    def reject(
        self, actor: Actor, application_number: str, reason: str, note: str = ""
    ) -> Result[Application]:
        return self.transition(
            application_number, TransitionRequest(S.REJECTED, actor, note, reason=reason)
        )

    def cancel(self, actor: Actor, application_number: str, note: str = "") -> Result[Application]:
        return self.transition(application_number, TransitionRequest(S.CANCELLED, actor, note))

    # ─────────────────────── internals ───────────────────────

    def _execute(self, app: Application, request: TransitionRequest) -> Result[Application]:
        now = self._clock()
        return (
            apply_transition(app, request, now)
            .flat_map(lambda updated: self._applications.update(updated, app.version, app.status))
            .peek(
                lambda stored: log.info(
                    "engine.transition_applied",
                    application_number=stored.application_number,
                    from_status=app.status.value,
                    to_status=stored.status.value,
                    actor_id=request.actor.id,
                )
            )
            .peek_failure(
                lambda err: log.info(
                    "engine.transition_refused",
                    application_number=app.application_number,
                    current_status=app.status.value,
                    target_status=request.target.value,
                    error_code=err.code.value,
                )
            )
            .peek(lambda stored: self._emit(app.status, stored, request, now))
        )

    def _emit(
        self,
        from_status: ApplicationStatus,
        stored: Application,
        request: TransitionRequest,
        now: datetime,
    ) -> None:
        event = LifecycleEvent(
            application_id=stored.id,
            application_number=stored.application_number,
            owner_id=stored.owner_id,
            from_status=from_status,
            to_status=stored.status,
            note=stored.status_history[-1].notes,
            notify=request.notify,
            occurred_at=now,
        )
        Result.from_computation(
            lambda: self._publisher.publish(event),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Event publisher raised",
        ).flat_map(lambda published: published).peek_failure(
            lambda err: log.warning(
                "engine.event_publish_failed",
                application_number=event.application_number,
                to_status=event.to_status.value,
                error=str(err),
                cause=err.details.get("cause"),
            )
        )
