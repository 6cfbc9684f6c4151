"""
Test support — clock, actors, payload builders and an in-process world.

Imported by test modules as `tests.support`; the fixtures in conftest.py
hand out instances of these.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from evisa_lifecycle.adapters.memory import (
    InMemoryApplicationRepository,
    InMemoryDocumentRepository,
    InMemoryDocumentStorage,
    InMemorySequenceCounter,
    InMemoryVisaTypeRepository,
)
from evisa_lifecycle.applications import ApplicationService
from evisa_lifecycle.catalog import VisaTypeCatalog
from evisa_lifecycle.domain.models import (
    Actor,
    Application,
    DocumentType,
    LifecycleEvent,
    Role,
    StoredDocument,
    VisaTypeDefinition,
)
from evisa_lifecycle.domain.ports import (
    ApplicationRepository,
    DocumentRepository,
    SequenceCounter,
    VisaTypeRepository,
)
from evisa_lifecycle.engine import LifecycleEngine
from evisa_lifecycle.railway import Result, ResultAssertions
from evisa_lifecycle.registry import DocumentRegistry
from evisa_lifecycle.statistics import StatisticsAggregator
from evisa_lifecycle.workflows import AccountPurgeWorkflow

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

APPLICANT = Actor("user-1")
OTHER_APPLICANT = Actor("user-2")
ADMIN = Actor("admin-1", Role.ADMIN)

MANDATORY = (DocumentType.PASSPORT_COPY, DocumentType.PHOTO, DocumentType.BANK_STATEMENT)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingPublisher:
    """EventPublisher that remembers every event it was handed."""

    def __init__(self) -> None:
        self.events: list[LifecycleEvent] = []

    def publish(self, event: LifecycleEvent) -> Result[LifecycleEvent]:
        self.events.append(event)
        return Result.success(event)


def tourist_visa_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": "TOURIST",
        "name": "Tourist e-Visa",
        "description": "Short stays for leisure travel",
        "category": "tourist",
        "duration": {"max_stay_days": 30, "validity_period_days": 90, "entries": "single"},
        "eligibility": {"excluded_nationalities": ["KP"], "min_age": 0, "max_age": 120},
        "required_documents": [
            {"type": "passport_copy", "name": "Passport copy", "formats": ["PDF", "JPG"]},
            {"type": "photo", "name": "Photo", "formats": ["JPG", "PNG"]},
            {"type": "bank_statement", "name": "Bank statement", "formats": ["PDF"]},
            {"type": "hotel_booking", "name": "Hotel booking", "is_mandatory": False},
        ],
        "processing": {"standard_days": 10, "urgent_days": 5},
        "fees": {
            "standard": {"amount": "50.00", "currency": "USD"},
            "urgent": {"amount": "90.00", "currency": "USD"},
            "service_fee": "5.00",
        },
    }
    payload.update(overrides)
    return payload


def application_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "visa_type_code": "TOURIST",
        "purpose": "tourism",
        "personal_info": {
            "passport_number": "AB1234567",
            "passport_issue_date": "2022-01-10",
            "passport_expiry_date": "2032-01-09",
            "passport_issuing_country": "US",
            "nationality": "US",
            "date_of_birth": "1990-05-15",
            "place_of_birth": "Boston",
            "marital_status": "single",
            "occupation": "Engineer",
        },
        "travel_info": {
            "intended_date_of_arrival": "2026-05-01T10:00:00Z",
            "intended_date_of_departure": "2026-05-15T10:00:00Z",
            "destination_address": {"city": "Dubai", "country": "United Arab Emirates"},
            "accommodation_type": "hotel",
        },
        "financial_info": {
            "funds_available": "5000",
            "currency": "USD",
            "source_of_funds": "personal_savings",
        },
        "emergency_contact": {
            "name": "Jane Doe",
            "relationship": "Sister",
            "phone": "+1 555 123 4567",
        },
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(payload.get(key), dict):
            payload[key] = {**payload[key], **value}
        else:
            payload[key] = value
    return copy.deepcopy(payload)


@dataclass
class World:
    """In-process adapters and the services wired over them."""

    clock: FrozenClock
    applications_repo: ApplicationRepository = field(default_factory=InMemoryApplicationRepository)
    visa_types_repo: VisaTypeRepository = field(default_factory=InMemoryVisaTypeRepository)
    documents_repo: DocumentRepository = field(default_factory=InMemoryDocumentRepository)
    counter: SequenceCounter = field(default_factory=InMemorySequenceCounter)
    storage: InMemoryDocumentStorage = field(default_factory=InMemoryDocumentStorage)
    publisher: RecordingPublisher = field(default_factory=RecordingPublisher)

    def __post_init__(self) -> None:
        self.catalog = VisaTypeCatalog(self.visa_types_repo, self.applications_repo, self.clock)
        self.registry = DocumentRegistry(self.documents_repo, self.storage, self.clock)
        self.applications = ApplicationService(
            self.applications_repo,
            self.visa_types_repo,
            self.documents_repo,
            self.counter,
            self.clock,
        )
        self.engine = LifecycleEngine(self.applications_repo, self.publisher, self.clock)
        self.statistics = StatisticsAggregator(self.visa_types_repo, self.applications_repo, self.clock)
        self.purge = AccountPurgeWorkflow(self.applications_repo, self.registry)

    # ── scenario helpers ──

    def register_tourist(self, **overrides: Any) -> VisaTypeDefinition:
        return ResultAssertions.assert_success(
            self.catalog.register(ADMIN, tourist_visa_payload(**overrides))
        )

    def upload(self, actor: Actor, handle: str, doc_type: DocumentType) -> str:
        self.storage.put(
            StoredDocument(handle=handle, type=doc_type, metadata={"filename": f"{handle}.pdf"})
        )
        ResultAssertions.assert_success(self.registry.register_upload(actor, handle))
        return handle

    def draft(self, actor: Actor = APPLICANT, **overrides: Any) -> Application:
        return ResultAssertions.assert_success(
            self.applications.create_application(actor, application_payload(**overrides))
        )

    def attach(self, app: Application, doc_types: tuple[DocumentType, ...], actor: Actor = APPLICANT) -> Application:
        for doc_type in doc_types:
            handle = self.upload(actor, f"{app.application_number}-{doc_type.value}", doc_type)
            app = ResultAssertions.assert_success(
                self.applications.attach_document(actor, app.application_number, handle)
            )
        return app

    def complete_draft(self, actor: Actor = APPLICANT, **overrides: Any) -> Application:
        return self.attach(self.draft(actor, **overrides), MANDATORY, actor)

    def submitted(self, actor: Actor = APPLICANT) -> Application:
        app = self.complete_draft(actor)
        return ResultAssertions.assert_success(self.engine.submit(actor, app.application_number))

    def under_review(self, actor: Actor = APPLICANT) -> Application:
        app = self.submitted(actor)
        return ResultAssertions.assert_success(self.engine.start_review(ADMIN, app.application_number))
