"""
Application service — intake, edits, document attachment, notes and deletion.

Every operation is a railway: load → guard → build the new value →
compare-and-set write. Writes always pass the version and status that were
read, so two requests racing on the same application cannot both win.

Creation flow:

  parse input
    → date-relative checks (passport validity, arrival window)
      → load visa type (must be active and public)
        → eligibility (nationality, age)
          → next per-year sequence value → application number
            → snapshot visa type, assess fee, initial draft history entry
              → insert

Status changes are not made here; see `evisa_lifecycle.engine`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from evisa_lifecycle.domain.applicant import (
    AdditionalInfo,
    EmergencyContact,
    FinancialInfo,
    PersonalInfo,
    TravelInfo,
    TravelPurpose,
    parse_model,
    temporal_violations,
)
from evisa_lifecycle.domain.catalog_rules import assess_fee, resolve_processing_days
from evisa_lifecycle.domain.eligibility import (
    ApplicantProfile,
    DocumentCompleteness,
    EligibilityResult,
    check_document_completeness,
    check_eligibility,
    submission_missing_documents,
)
from evisa_lifecycle.domain.lifecycle import (
    allowed_targets,
    ensure_admin,
    ensure_deletable,
    ensure_editable,
    ensure_owner,
    ensure_owner_or_admin,
)
from evisa_lifecycle.domain.models import (
    Actor,
    AdminNote,
    Application,
    ApplicationDocument,
    ApplicationRequest,
    ApplicationStatus,
    DocumentRecord,
    DocumentType,
    ProcessingTier,
    StatusHistoryEntry,
    VisaTypeDefinition,
    utc_now,
)
from evisa_lifecycle.domain.numbering import (
    DEFAULT_PREFIX,
    DEFAULT_SEQUENCE_WIDTH,
    format_application_number,
    sequence_key,
)
from evisa_lifecycle.domain.ports import (
    ApplicationRepository,
    DocumentRepository,
    SequenceCounter,
    VisaTypeRepository,
)
from evisa_lifecycle.railway import ErrorCode, Result, ResultFailures

log = structlog.get_logger()

_SECTIONS: dict[str, type] = {
    "personal_info": PersonalInfo,
    "travel_info": TravelInfo,
    "financial_info": FinancialInfo,
    "emergency_contact": EmergencyContact,
    "additional_info": AdditionalInfo,
}
_EDITABLE_FIELDS = frozenset({*_SECTIONS, "purpose", "tier", "visa_type_code"})


@dataclass(frozen=True, slots=True)
class ApplicationProgress:
    """Applicant-facing summary of where an application stands."""

    application_number: str
    status: ApplicationStatus
    days_since_submission: int | None
    expected_completion_date: datetime | None
    completion_percentage: int
    missing_documents: tuple[DocumentType, ...]
    next_statuses: tuple[ApplicationStatus, ...]


class ApplicationService:
    def __init__(
        self,
        applications: ApplicationRepository,
        visa_types: VisaTypeRepository,
        documents: DocumentRepository,
        counter: SequenceCounter,
        clock: Callable[[], datetime] = utc_now,
        number_prefix: str = DEFAULT_PREFIX,
        number_width: int = DEFAULT_SEQUENCE_WIDTH,
    ) -> None:
        self._applications = applications
        self._visa_types = visa_types
        self._documents = documents
        self._counter = counter
        self._clock = clock
        self._number_prefix = number_prefix
        self._number_width = number_width

    # ─────────────────────── Creation ───────────────────────

    def create_application(
        self, actor: Actor, payload: ApplicationRequest | Mapping[str, Any]
    ) -> Result[Application]:
        now = self._clock()
        return (
            parse_model(ApplicationRequest, payload)
            .flat_map(lambda request: self._check_dates(request, now))
            .flat_map(
                lambda request: self._load_available_visa_type(request.visa_type_code).map(
                    lambda visa_type: (request, visa_type)
                )
            )
            .flat_map(lambda pair: self._check_eligible(pair, now))
            .flat_map(lambda pair: self._allocate_number(now).map(lambda number: (*pair, number)))
            .map(lambda triple: self._build(actor, *triple, now))
            .flat_map(self._applications.add)
            .peek(
                lambda app: log.info(
                    "applications.created",
                    application_number=app.application_number,
                    owner_id=app.owner_id,
                    visa_type=app.visa_type_code,
                )
            )
        )

    def check_eligibility(
        self, visa_type_code: str, personal_info: PersonalInfo | Mapping[str, Any]
    ) -> Result[EligibilityResult]:
        as_of = self._clock().date()
        return parse_model(PersonalInfo, personal_info).flat_map(
            lambda personal: self._visa_types.get(visa_type_code).map(
                lambda visa_type: check_eligibility(
                    ApplicantProfile.from_personal_info(personal, as_of), visa_type
                )
            )
        )

    # ─────────────────────── Reads ───────────────────────

    def get_application(self, actor: Actor, application_number: str) -> Result[Application]:
        return self._applications.get(application_number).flat_map(
            lambda app: ensure_owner_or_admin(app, actor)
        )

    def list_for_owner(self, actor: Actor, owner_id: str | None = None) -> Result[list[Application]]:
        owner = owner_id or actor.id
        if owner != actor.id and not actor.is_admin:
            return ResultFailures.forbidden(
                f"Actor {actor.id} may not list applications of {owner}", actor_id=actor.id
            )
        return self._applications.list_by_owner(owner)

    def document_completeness(
        self, actor: Actor, application_number: str
    ) -> Result[DocumentCompleteness]:
        return self.get_application(actor, application_number).map(check_document_completeness)

    def progress(self, actor: Actor, application_number: str) -> Result[ApplicationProgress]:
        now = self._clock()
        return self.get_application(actor, application_number).map(
            lambda app: ApplicationProgress(
                application_number=app.application_number,
                status=app.status,
                days_since_submission=app.days_since_submission(now),
                expected_completion_date=app.expected_completion_date(),
                completion_percentage=app.document_completion_percentage(),
                missing_documents=submission_missing_documents(app),
                next_statuses=tuple(sorted(allowed_targets(app.status))),
            )
        )

    def admin_notes(self, actor: Actor, application_number: str) -> Result[tuple[AdminNote, ...]]:
        """Staff see every note; applicants only the non-internal ones."""
        return self.get_application(actor, application_number).map(
            lambda app: app.admin_notes if actor.is_admin else app.visible_admin_notes()
        )

    # ─────────────────────── Edits ───────────────────────

    def update_applicant_data(
        self, actor: Actor, application_number: str, changes: Mapping[str, Any]
    ) -> Result[Application]:
        """
        Replace applicant sections, purpose, tier or visa type of an editable application.

        Date-relative rules and eligibility are re-checked against the
        resulting data; the fee and expected processing time are reassessed.
        """
        unknown = sorted(set(changes) - _EDITABLE_FIELDS)
        if unknown:
            return ResultFailures.validation_error(
                f"Fields cannot be edited: {', '.join(unknown)}", field=unknown[0]
            )
        now = self._clock()
        return (
            self._applications.get(application_number)
            .flat_map(lambda app: ensure_owner(app, actor))
            .flat_map(ensure_editable)
            .flat_map(lambda app: self._apply_changes(app, changes, now))
            .flat_map(lambda pair: self._write(*pair))
            .peek(
                lambda app: log.info(
                    "applications.updated",
                    application_number=app.application_number,
                    fields=sorted(changes),
                )
            )
        )

    def attach_document(
        self, actor: Actor, application_number: str, handle: str
    ) -> Result[Application]:
        """Copy a registry document owned by the applicant into the application."""
        now = self._clock()
        return (
            self._applications.get(application_number)
            .flat_map(lambda app: ensure_owner(app, actor))
            .flat_map(ensure_editable)
            .flat_map(
                lambda app: self._documents.get(handle)
                .flat_map(lambda record: _ensure_attachable(app, record))
                .map(lambda record: (app, _attach(app, record, now)))
            )
            .flat_map(lambda pair: self._write(*pair))
            .peek(lambda app: self._index_document(handle, app.application_number))
            .peek(
                lambda app: log.info(
                    "applications.document_attached",
                    application_number=app.application_number,
                    handle=handle,
                )
            )
        )

    def detach_document(
        self, actor: Actor, application_number: str, handle: str
    ) -> Result[Application]:
        now = self._clock()
        return (
            self._applications.get(application_number)
            .flat_map(lambda app: ensure_owner(app, actor))
            .flat_map(ensure_editable)
            .flat_map(lambda app: _ensure_attached(app, handle))
            .map(
                lambda app: (
                    app,
                    app.model_copy(
                        update={
                            "documents": tuple(d for d in app.documents if d.handle != handle),
                            "updated_at": now,
                        }
                    ),
                )
            )
            .flat_map(lambda pair: self._write(*pair))
            .peek(lambda _: self._index_document(handle, None))
        )

    def verify_document(
        self,
        actor: Actor,
        application_number: str,
        handle: str,
        verified: bool = True,
        notes: str | None = None,
    ) -> Result[Application]:
        """Staff verification of the application's own copy of a document."""
        now = self._clock()

        def _mark(app: Application) -> Application:
            documents = tuple(
                doc.model_copy(
                    update={
                        "verified": verified,
                        "verified_by": actor.id,
                        "verified_at": now,
                        "verification_notes": notes,
                    }
                )
                if doc.handle == handle
                else doc
                for doc in app.documents
            )
            return app.model_copy(update={"documents": documents, "updated_at": now})

        return (
            ensure_admin(actor, "verify application documents")
            .flat_map(lambda _: self._applications.get(application_number))
            .flat_map(_ensure_not_terminal)
            .flat_map(lambda app: _ensure_attached(app, handle))
            .flat_map(lambda app: self._write(app, _mark(app)))
        )

    def add_admin_note(
        self,
        actor: Actor,
        application_number: str,
        note: str,
        internal: bool = False,
    ) -> Result[Application]:
        """Staff notes may be appended in any state, including terminal ones."""
        if not note or not note.strip():
            return ResultFailures.validation_error("Admin note cannot be empty", field="note")
        now = self._clock()
        entry = AdminNote(note=note, added_by=actor.id, added_at=now, is_internal=internal)
        return (
            ensure_admin(actor, "add admin notes")
            .flat_map(lambda _: self._applications.get(application_number))
            .flat_map(
                lambda app: self._write(
                    app,
                    app.model_copy(
                        update={"admin_notes": (*app.admin_notes, entry), "updated_at": now}
                    ),
                )
            )
        )

    # ─────────────────────── Deletion ───────────────────────

    def delete_application(self, actor: Actor, application_number: str) -> Result[str]:
        """
        Delete a draft application.

        Registry documents linked to it are unlinked, not deleted.
        """
        return (
            self._applications.get(application_number)
            .flat_map(lambda app: ensure_owner_or_admin(app, actor))
            .flat_map(ensure_deletable)
            .flat_map(
                lambda app: self._applications.delete(app.application_number, app.version).map(
                    lambda number: (number, app)
                )
            )
            .peek(lambda pair: self._unlink_all(pair[1]))
            .map(lambda pair: pair[0])
            .peek(
                lambda number: log.info(
                    "applications.deleted", application_number=number, actor_id=actor.id
                )
            )
        )

    # ─────────────────────── internals ───────────────────────

    def _write(self, before: Application, after: Application) -> Result[Application]:
        return self._applications.update(after, before.version, before.status)

    def _check_dates(self, request: ApplicationRequest, now: datetime) -> Result[ApplicationRequest]:
        violations = temporal_violations(request.personal_info, request.travel_info, now.date())
        if violations:
            field, message = violations[0]
            return ResultFailures.validation_error(
                f"Invalid application: {field}: {message}",
                field=field,
                errors=[{"field": f, "message": m} for f, m in violations],
            )
        return Result.success(request)

    def _load_available_visa_type(self, code: str) -> Result[VisaTypeDefinition]:
        return self._visa_types.get(code).ensure(
            lambda visa_type: visa_type.is_visible,
            ErrorCode.VALIDATION_ERROR,
            f"Visa type {code} is not open for applications",
            {"field": "visa_type_code"},
        )

    def _check_eligible(
        self, pair: tuple[ApplicationRequest, VisaTypeDefinition], now: datetime
    ) -> Result[tuple[ApplicationRequest, VisaTypeDefinition]]:
        request, visa_type = pair
        return _eligibility_gate(request.personal_info, visa_type, now).map(lambda _: pair)

    def _allocate_number(self, now: datetime) -> Result[str]:
        year = now.year
        return self._counter.next_value(sequence_key(year)).map(
            lambda sequence: format_application_number(
                year, sequence, self._number_prefix, self._number_width
            )
        )

    def _build(
        self,
        actor: Actor,
        request: ApplicationRequest,
        visa_type: VisaTypeDefinition,
        number: str,
        now: datetime,
    ) -> Application:
        return Application(
            application_number=number,
            owner_id=actor.id,
            visa_type=visa_type.snapshot(),
            purpose=request.purpose,
            tier=request.tier,
            personal_info=request.personal_info,
            travel_info=request.travel_info,
            financial_info=request.financial_info,
            emergency_contact=request.emergency_contact,
            additional_info=request.additional_info,
            status=ApplicationStatus.DRAFT,
            status_history=(
                StatusHistoryEntry(
                    status=ApplicationStatus.DRAFT,
                    changed_by=actor.id,
                    changed_at=now,
                    notes="Application created",
                    notify_user=False,
                ),
            ),
            fee=assess_fee(visa_type, request.tier),
            expected_processing_days=resolve_processing_days(visa_type, request.tier),
            created_at=now,
            updated_at=now,
        )

    def _apply_changes(
        self, app: Application, changes: Mapping[str, Any], now: datetime
    ) -> Result[tuple[Application, Application]]:
        parsed: list[Result[tuple[str, Any]]] = []
        for key, value in changes.items():
            if key in _SECTIONS:
                parsed.append(parse_model(_SECTIONS[key], value).map(lambda m, k=key: (k, m)))
            elif key == "purpose":
                parsed.append(_parse_enum(TravelPurpose, key, value))
            elif key == "tier":
                parsed.append(_parse_enum(ProcessingTier, key, value))

        def _with_visa_type(updates: dict[str, Any]) -> Result[dict[str, Any]]:
            code = changes.get("visa_type_code")
            if code is None or str(code).strip().upper() == app.visa_type_code:
                return Result.success(updates)
            return self._load_available_visa_type(str(code)).map(
                lambda visa_type: {**updates, "visa_type": visa_type.snapshot()}
            )

        def _assemble(updates: dict[str, Any]) -> Result[tuple[Application, Application]]:
            candidate = app.model_copy(update={**updates, "updated_at": now})
            violations = temporal_violations(
                candidate.personal_info, candidate.travel_info, now.date()
            )
            if violations:
                field, message = violations[0]
                return ResultFailures.validation_error(
                    f"Invalid application: {field}: {message}", field=field
                )
            reassessed = candidate.model_copy(
                update={
                    "fee": assess_fee(candidate.visa_type, candidate.tier),
                    "expected_processing_days": resolve_processing_days(
                        candidate.visa_type, candidate.tier
                    ),
                }
            )
            return _eligibility_gate(reassessed.personal_info, reassessed.visa_type, now).map(
                lambda _: (app, reassessed)
            )

        return (
            Result.all_of(parsed)
            .map(dict)
            .flat_map(_with_visa_type)
            .flat_map(_assemble)
        )

    def _index_document(self, handle: str, application_number: str | None) -> None:
        link = Result.from_computation(
            lambda: self._documents.get(handle).flat_map(
                lambda record: self._documents.update(
                    record.model_copy(update={"application_number": application_number})
                )
            ),
            ErrorCode.DATABASE_ERROR,
            "Document index update raised",
        ).flat_map(lambda inner: inner)
        link.peek_failure(
            lambda err: log.warning(
                "applications.document_index_failed", handle=handle, error=str(err)
            )
        )

    def _unlink_all(self, app: Application) -> None:
        for doc in app.documents:
            self._index_document(doc.handle, None)


# ─────────────────────── guards ───────────────────────


def _eligibility_gate(
    personal: PersonalInfo, visa_type: VisaTypeDefinition, now: datetime
) -> Result[EligibilityResult]:
    result = check_eligibility(ApplicantProfile.from_personal_info(personal, now.date()), visa_type)
    if not result.eligible:
        return ResultFailures.validation_error(
            "Applicant is not eligible: " + "; ".join(result.reasons),
            field="personal_info",
            reasons=list(result.reasons),
        )
    return Result.success(result)


def _ensure_attachable(app: Application, record: DocumentRecord) -> Result[DocumentRecord]:
    if record.owner_id != app.owner_id:
        return ResultFailures.forbidden(
            f"Document {record.handle} does not belong to the applicant", handle=record.handle
        )
    if any(doc.handle == record.handle for doc in app.documents):
        return ResultFailures.conflict(
            f"Document {record.handle} is already attached", handle=record.handle
        )
    if record.application_number not in (None, app.application_number):
        return ResultFailures.conflict(
            f"Document {record.handle} is attached to {record.application_number}",
            handle=record.handle,
            application_number=record.application_number,
        )
    return Result.success(record)


def _attach(app: Application, record: DocumentRecord, now: datetime) -> Application:
    copy = ApplicationDocument(
        handle=record.handle,
        type=record.type,
        filename=record.filename,
        mime_type=record.mime_type,
        size_bytes=record.size_bytes,
        attached_at=now,
    )
    return app.model_copy(update={"documents": (*app.documents, copy), "updated_at": now})


def _ensure_attached(app: Application, handle: str) -> Result[Application]:
    if not any(doc.handle == handle for doc in app.documents):
        return ResultFailures.not_found("Application document", handle)
    return Result.success(app)


def _ensure_not_terminal(app: Application) -> Result[Application]:
    if app.is_terminal:
        return ResultFailures.invalid_transition(
            f"Application {app.application_number} is {app.status.value}; its data is final",
            current_status=app.status.value,
        )
    return Result.success(app)


def _parse_enum(enum_cls: type, key: str, value: Any) -> Result[tuple[str, Any]]:
    try:
        return Result.success((key, enum_cls(value)))
    except ValueError:
        return ResultFailures.validation_error(f"Invalid {key}: {value!r}", field=key)
