"""
Application status state machine — pure guards and transition effects.

    draft → submitted → under_review ⇄ additional_docs_required
                        under_review → interview_scheduled → approved | rejected
                        under_review → rejected
                        under_review → approved   (only when no interview is required)
    any non-terminal state → cancelled

`apply_transition` runs the guards as a railway and, when they all pass,
returns a new Application with the status, exactly one new history entry
and the transition's timestamps applied together. Persisting that value
(compare-and-set) and emitting the lifecycle event is the engine's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from evisa_lifecycle.domain.catalog_rules import assess_fee, resolve_processing_days
from evisa_lifecycle.domain.eligibility import submission_missing_documents
from evisa_lifecycle.domain.models import (
    DELETABLE_STATES,
    EDITABLE_STATES,
    Actor,
    Application,
    ApplicationStatus,
    InterviewInfo,
    StatusHistoryEntry,
)
from evisa_lifecycle.railway import Result, ResultFailures

S = ApplicationStatus

TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.CANCELLED}),
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.CANCELLED}),
    S.UNDER_REVIEW: frozenset(
        {S.ADDITIONAL_DOCS_REQUIRED, S.INTERVIEW_SCHEDULED, S.APPROVED, S.REJECTED, S.CANCELLED}
    ),
    S.ADDITIONAL_DOCS_REQUIRED: frozenset({S.UNDER_REVIEW, S.CANCELLED}),
    S.INTERVIEW_SCHEDULED: frozenset({S.APPROVED, S.REJECTED, S.CANCELLED}),
    S.APPROVED: frozenset(),
    S.REJECTED: frozenset(),
    S.CANCELLED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class TransitionRequest:
    """A requested status change and its annotations."""

    target: ApplicationStatus
    actor: Actor
    note: str = ""
    reason: str | None = None
    notify: bool = True
    interview: InterviewInfo | None = None


def allowed_targets(status: ApplicationStatus) -> frozenset[ApplicationStatus]:
    return TRANSITIONS[status]


def apply_transition(
    application: Application, request: TransitionRequest, now: datetime
) -> Result[Application]:
    return (
        _ensure_reachable(application, request)
        .flat_map(lambda app: _ensure_actor_permitted(app, request))
        .flat_map(lambda app: _ensure_guards(app, request))
        .map(lambda app: _record(app, request, now))
    )


# ─────────────────────── Guards ───────────────────────


def _ensure_reachable(app: Application, request: TransitionRequest) -> Result[Application]:
    allowed = allowed_targets(app.status)
    if not allowed:
        return ResultFailures.invalid_transition(
            f"Application {app.application_number} is {app.status.value}; no further transitions",
            current_status=app.status.value,
            target_status=request.target.value,
        )
    if request.target not in allowed:
        return ResultFailures.invalid_transition(
            f"Cannot move application from {app.status.value} to {request.target.value}",
            current_status=app.status.value,
            target_status=request.target.value,
            allowed=sorted(s.value for s in allowed),
        )
    return Result.success(app)


def _ensure_actor_permitted(app: Application, request: TransitionRequest) -> Result[Application]:
    actor = request.actor
    is_owner = actor.id == app.owner_id
    target = request.target

    if target is S.SUBMITTED:
        permitted = is_owner
    elif target is S.CANCELLED:
        permitted = is_owner or actor.is_admin
    elif target is S.UNDER_REVIEW and app.status is S.ADDITIONAL_DOCS_REQUIRED:
        permitted = is_owner or actor.is_admin
    else:
        permitted = actor.is_admin

    if not permitted:
        return ResultFailures.forbidden(
            f"Actor {actor.id} may not move application {app.application_number} to {target.value}",
            actor_id=actor.id,
            current_status=app.status.value,
            target_status=target.value,
        )
    return Result.success(app)


def _ensure_guards(app: Application, request: TransitionRequest) -> Result[Application]:
    match request.target:
        case S.SUBMITTED:
            missing = submission_missing_documents(app)
            if missing:
                return ResultFailures.invalid_transition(
                    "Mandatory documents missing: " + ", ".join(d.value for d in missing),
                    current_status=app.status.value,
                    target_status=S.SUBMITTED.value,
                    missing=[d.value for d in missing],
                )
        case S.APPROVED if app.status is S.UNDER_REVIEW and app.visa_type.interview_required:
            return ResultFailures.invalid_transition(
                f"Visa type {app.visa_type_code} requires an interview before approval",
                current_status=app.status.value,
                target_status=S.APPROVED.value,
                allowed=sorted(s.value for s in allowed_targets(app.status) - {S.APPROVED}),
            )
        case S.REJECTED if not _rejection_reason(request):
            return ResultFailures.invalid_transition(
                "A rejection reason is required",
                current_status=app.status.value,
                target_status=S.REJECTED.value,
                field="reason",
            )
    return Result.success(app)


def _rejection_reason(request: TransitionRequest) -> str:
    return (request.reason or request.note or "").strip()


# ─────────────────────── Effects ───────────────────────


def _record(app: Application, request: TransitionRequest, now: datetime) -> Application:
    target = request.target
    note = request.note or (request.reason or "")
    entry = StatusHistoryEntry(
        status=target,
        changed_by=request.actor.id,
        changed_at=now,
        notes=note,
        notify_user=request.notify,
    )
    updates: dict[str, object] = {
        "status": target,
        "status_history": (*app.status_history, entry),
        "updated_at": now,
    }

    match target:
        case S.SUBMITTED:
            updates["submitted_at"] = now
            updates["fee"] = assess_fee(app.visa_type, app.tier)
            updates["expected_processing_days"] = resolve_processing_days(app.visa_type, app.tier)
        case S.UNDER_REVIEW if app.processed_at is None:
            updates["processed_at"] = now
        case S.INTERVIEW_SCHEDULED if request.interview is not None:
            updates["interview"] = request.interview
        case S.APPROVED:
            updates["approved_at"] = now
        case S.REJECTED:
            updates["rejected_at"] = now
            updates["rejection_reason"] = _rejection_reason(request)

    return app.model_copy(update=updates)


# ─────────────────────── Mutation, deletion and access guards ───────────────────────


def ensure_editable(app: Application) -> Result[Application]:
    """Applicant data, documents and visa type change only in editable states."""
    if not app.is_editable:
        return ResultFailures.invalid_transition(
            f"Application {app.application_number} cannot be edited while {app.status.value}",
            current_status=app.status.value,
            editable_states=sorted(s.value for s in EDITABLE_STATES),
        )
    return Result.success(app)


def ensure_deletable(app: Application) -> Result[Application]:
    if app.status not in DELETABLE_STATES:
        return ResultFailures.invalid_transition(
            f"Only draft applications may be deleted; {app.application_number} is {app.status.value}",
            current_status=app.status.value,
        )
    return Result.success(app)


def ensure_owner_or_admin(app: Application, actor: Actor) -> Result[Application]:
    if actor.id != app.owner_id and not actor.is_admin:
        return ResultFailures.forbidden(
            f"Actor {actor.id} does not own application {app.application_number}",
            actor_id=actor.id,
        )
    return Result.success(app)


def ensure_admin(actor: Actor, action: str) -> Result[Actor]:
    if not actor.is_admin:
        return ResultFailures.forbidden(f"Only staff may {action}", actor_id=actor.id)
    return Result.success(actor)


def ensure_owner(app: Application, actor: Actor) -> Result[Application]:
    if actor.id != app.owner_id:
        return ResultFailures.forbidden(
            f"Only the owner may modify application {app.application_number}",
            actor_id=actor.id,
        )
    return Result.success(app)
