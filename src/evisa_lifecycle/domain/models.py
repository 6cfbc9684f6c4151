"""
Domain models — visa-type catalog entries, document records and applications.

Catalog entries, registry documents and applications are frozen pydantic
models: they validate on construction, dump to JSON for storage and every
change produces a new value (`model_copy(update=...)`). Small value objects
that never leave the process (actors, events, collaborator replies) are
frozen dataclasses.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from evisa_lifecycle.domain.applicant import (
    AdditionalInfo,
    EmergencyContact,
    FinancialInfo,
    PersonalInfo,
    TravelInfo,
    TravelPurpose,
)

# ─────────────────────── Enumerations ───────────────────────


class VisaCategory(StrEnum):
    TOURIST = "tourist"
    BUSINESS = "business"
    STUDENT = "student"
    WORK = "work"
    FAMILY = "family"
    MEDICAL = "medical"
    TRANSIT = "transit"
    DIPLOMATIC = "diplomatic"
    OTHER = "other"


class EntryType(StrEnum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class ProcessingTier(StrEnum):
    STANDARD = "standard"
    URGENT = "urgent"
    EXPRESS = "express"


class DocumentType(StrEnum):
    PASSPORT_COPY = "passport_copy"
    PHOTO = "photo"
    BANK_STATEMENT = "bank_statement"
    EMPLOYMENT_LETTER = "employment_letter"
    INVITATION_LETTER = "invitation_letter"
    HOTEL_BOOKING = "hotel_booking"
    FLIGHT_ITINERARY = "flight_itinerary"
    TRAVEL_INSURANCE = "travel_insurance"
    MEDICAL_CERTIFICATE = "medical_certificate"
    POLICE_CLEARANCE = "police_clearance"
    ACADEMIC_TRANSCRIPT = "academic_transcript"
    BIRTH_CERTIFICATE = "birth_certificate"
    MARRIAGE_CERTIFICATE = "marriage_certificate"
    SPONSORSHIP_LETTER = "sponsorship_letter"
    OTHER = "other"


class FileFormat(StrEnum):
    PDF = "PDF"
    JPG = "JPG"
    JPEG = "JPEG"
    PNG = "PNG"
    DOC = "DOC"
    DOCX = "DOCX"


class VerificationStatus(StrEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ApplicationStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ADDITIONAL_DOCS_REQUIRED = "additional_docs_required"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class InterviewStatus(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class Role(StrEnum):
    APPLICANT = "applicant"
    ADMIN = "admin"


TERMINAL_STATES: frozenset[ApplicationStatus] = frozenset(
    {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.CANCELLED}
)
EDITABLE_STATES: frozenset[ApplicationStatus] = frozenset(
    {ApplicationStatus.DRAFT, ApplicationStatus.ADDITIONAL_DOCS_REQUIRED}
)
DELETABLE_STATES: frozenset[ApplicationStatus] = frozenset({ApplicationStatus.DRAFT})

# Used by the submission guard when the visa-type snapshot lists no mandatory documents.
DEFAULT_MANDATORY_DOCUMENTS: tuple[DocumentType, ...] = (
    DocumentType.PASSPORT_COPY,
    DocumentType.PHOTO,
    DocumentType.BANK_STATEMENT,
)


# ─────────────────────── Identity ───────────────────────


@dataclass(frozen=True, slots=True)
class Actor:
    """Opaque caller identity as supplied by the authentication collaborator."""

    id: str
    role: Role = Role.APPLICANT

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def utc_now() -> datetime:
    return datetime.now(UTC)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)


# ─────────────────────── Visa type catalog ───────────────────────


class Money(_Frozen):
    amount: Decimal = Field(ge=0)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")


class StayRules(_Frozen):
    max_stay_days: int = Field(ge=1)
    validity_period_days: int = Field(ge=1)
    entries: EntryType = EntryType.SINGLE


class EligibilityRules(_Frozen):
    """
    Nationality and age restrictions.

    The deny-list always wins; an empty allow-list admits every nationality
    not on the deny-list. Nationalities are compared upper-cased.
    """

    allowed_nationalities: tuple[str, ...] = ()
    excluded_nationalities: tuple[str, ...] = ()
    min_age: int | None = Field(default=None, ge=0, le=100)
    max_age: int | None = Field(default=None, ge=0, le=120)

    @field_validator("allowed_nationalities", "excluded_nationalities", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return tuple(str(v).strip().upper() for v in value)
        return value

    @model_validator(mode="after")
    def _age_bounds(self) -> EligibilityRules:
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age cannot exceed max_age")
        return self


class RequiredDocument(_Frozen):
    type: DocumentType
    name: str = Field(min_length=1)
    description: str | None = None
    is_mandatory: bool = True
    formats: tuple[FileFormat, ...] = ()
    max_size_mb: float = Field(default=5, gt=0)


class ProcessingTimes(_Frozen):
    standard_days: int = Field(ge=1)
    urgent_days: int | None = Field(default=None, ge=1)
    express_days: int | None = Field(default=None, ge=1)


class FeeSchedule(_Frozen):
    standard: Money
    urgent: Money | None = None
    express: Money | None = None
    service_fee: Decimal = Field(default=Decimal("0"), ge=0)


class VisaSettings(_Frozen):
    is_active: bool = True
    is_public: bool = True


class VisaStatistics(_Frozen):
    """Cached counters; written only by the statistics aggregator."""

    total_applications: int = 0
    approved_applications: int = 0
    rejected_applications: int = 0
    average_processing_days: float = 0.0
    last_updated: datetime | None = None

    @property
    def approval_rate(self) -> float:
        if self.total_applications == 0:
            return 0.0
        return round(self.approved_applications / self.total_applications * 100, 2)

    @property
    def rejection_rate(self) -> float:
        if self.total_applications == 0:
            return 0.0
        return round(self.rejected_applications / self.total_applications * 100, 2)

    def same_counters(self, other: VisaStatistics) -> bool:
        return self.model_dump(exclude={"last_updated"}) == other.model_dump(
            exclude={"last_updated"}
        )


class VisaTypeDefinition(_Frozen):
    code: str = Field(min_length=1, max_length=10, pattern=r"^[A-Z0-9_]+$")
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    category: VisaCategory
    duration: StayRules
    eligibility: EligibilityRules = Field(default_factory=EligibilityRules)
    required_documents: tuple[RequiredDocument, ...] = ()
    processing: ProcessingTimes
    fees: FeeSchedule
    interview_required: bool = False
    settings: VisaSettings = Field(default_factory=VisaSettings)
    statistics: VisaStatistics = Field(default_factory=VisaStatistics)
    created_by: str | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _upper_code(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("required_documents")
    @classmethod
    def _unique_types(cls, value: tuple[RequiredDocument, ...]) -> tuple[RequiredDocument, ...]:
        seen = [doc.type for doc in value]
        if len(seen) != len(set(seen)):
            raise ValueError("required_documents must list each document type once")
        return value

    def mandatory_document_types(self) -> tuple[DocumentType, ...]:
        return tuple(doc.type for doc in self.required_documents if doc.is_mandatory)

    @property
    def is_visible(self) -> bool:
        return self.settings.is_active and self.settings.is_public

    def snapshot(self) -> VisaTypeDefinition:
        """Copy embedded into an application; cached statistics are not carried."""
        return self.model_copy(update={"statistics": VisaStatistics()})


# ─────────────────────── Document registry ───────────────────────


@dataclass(frozen=True, slots=True)
class StoredDocument:
    """What the storage collaborator knows about an uploaded object."""

    handle: str
    type: DocumentType
    verified: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


class DocumentRecord(_Frozen):
    handle: str = Field(min_length=1)
    owner_id: str
    type: DocumentType = DocumentType.OTHER
    status: VerificationStatus = VerificationStatus.PENDING
    filename: str = ""
    original_name: str = ""
    mime_type: str = ""
    size_bytes: int = Field(default=0, ge=0)
    application_number: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    expires_at: datetime | None = None
    uploaded_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


# ─────────────────────── Application ───────────────────────


class ApplicationDocument(_Frozen):
    """
    The application's own copy of an attached document.

    Its verification state belongs to this application only and is not an
    alias of the registry record's status.
    """

    handle: str
    type: DocumentType
    filename: str = ""
    mime_type: str = ""
    size_bytes: int = 0
    attached_at: datetime
    verified: bool = False
    verified_by: str | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None


class StatusHistoryEntry(_Frozen):
    status: ApplicationStatus
    changed_by: str
    changed_at: datetime
    notes: str = ""
    notify_user: bool = True


class AdminNote(_Frozen):
    note: str = Field(min_length=1)
    added_by: str
    added_at: datetime
    is_internal: bool = False


class InterviewInfo(_Frozen):
    scheduled_at: datetime
    location: str = ""
    interviewer: str = ""
    status: InterviewStatus = InterviewStatus.SCHEDULED
    notes: str = ""


class FeeAssessment(_Frozen):
    tier: ProcessingTier
    amount: Decimal
    currency: str
    service_fee: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.amount + self.service_fee


class Application(_Frozen):
    id: UUID = Field(default_factory=uuid4)
    application_number: str
    owner_id: str
    visa_type: VisaTypeDefinition
    purpose: TravelPurpose
    tier: ProcessingTier = ProcessingTier.STANDARD
    personal_info: PersonalInfo
    travel_info: TravelInfo
    financial_info: FinancialInfo
    emergency_contact: EmergencyContact
    additional_info: AdditionalInfo = Field(default_factory=AdditionalInfo)
    documents: tuple[ApplicationDocument, ...] = ()
    status: ApplicationStatus = ApplicationStatus.DRAFT
    status_history: tuple[StatusHistoryEntry, ...] = ()
    admin_notes: tuple[AdminNote, ...] = ()
    interview: InterviewInfo | None = None
    fee: FeeAssessment
    expected_processing_days: int = Field(ge=1)
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    processed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    version: int = 0

    @property
    def visa_type_code(self) -> str:
        return self.visa_type.code

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATES

    def attached_types(self) -> frozenset[DocumentType]:
        return frozenset(doc.type for doc in self.documents)

    def resolved_mandatory_documents(self) -> tuple[DocumentType, ...]:
        """Snapshot's mandatory types, or the default trio when it lists none."""
        return self.visa_type.mandatory_document_types() or DEFAULT_MANDATORY_DOCUMENTS

    def days_since_submission(self, now: datetime) -> int | None:
        if self.submitted_at is None:
            return None
        return math.floor((now - self.submitted_at) / timedelta(days=1))

    def expected_completion_date(self) -> datetime | None:
        if self.submitted_at is None:
            return None
        return self.submitted_at + timedelta(days=self.expected_processing_days)

    def document_completion_percentage(self) -> int:
        required = set(self.resolved_mandatory_documents())
        present = required & self.attached_types()
        return round(len(present) / len(required) * 100)

    def visible_admin_notes(self) -> tuple[AdminNote, ...]:
        return tuple(note for note in self.admin_notes if not note.is_internal)


class ApplicationRequest(_Frozen):
    """Applicant input for a new application, before catalog and date checks."""

    visa_type_code: str = Field(min_length=1, max_length=10)
    purpose: TravelPurpose
    tier: ProcessingTier = ProcessingTier.STANDARD
    personal_info: PersonalInfo
    travel_info: TravelInfo
    financial_info: FinancialInfo
    emergency_contact: EmergencyContact
    additional_info: AdditionalInfo = Field(default_factory=AdditionalInfo)

    @field_validator("visa_type_code", mode="before")
    @classmethod
    def _upper_code(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value


# ─────────────────────── Lifecycle events ───────────────────────


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """Notification-worthy fact emitted after a successful transition."""

    application_id: UUID
    application_number: str
    owner_id: str
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    note: str
    notify: bool
    occurred_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "applicationId": str(self.application_id),
            "applicationNumber": self.application_number,
            "ownerId": self.owner_id,
            "fromStatus": self.from_status.value,
            "toStatus": self.to_status.value,
            "note": self.note,
            "notify": self.notify,
            "occurredAt": self.occurred_at.isoformat(),
        }
