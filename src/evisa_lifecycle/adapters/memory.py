"""
In-process adapters — dict-backed implementations of every port.

Used by the `memory` storage backend (local runs, demos) and by the test
suite. Each adapter guards its state with a lock held only for the
in-memory read-check-write, which gives the same guarantees the Postgres
adapters get from single-statement compare-and-set:

  * InMemorySequenceCounter never hands out the same value twice per key.
  * InMemoryApplicationRepository.update rejects stale (version, status).
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime

import structlog

from evisa_lifecycle.domain.models import (
    Application,
    ApplicationStatus,
    DocumentRecord,
    LifecycleEvent,
    StoredDocument,
    VisaStatistics,
    VisaTypeDefinition,
)
from evisa_lifecycle.railway import Result, ResultFailures

log = structlog.get_logger()


class InMemoryApplicationRepository:
    def __init__(self) -> None:
        self._records: dict[str, Application] = {}
        self._lock = threading.Lock()

    def add(self, application: Application) -> Result[Application]:
        with self._lock:
            if application.application_number in self._records:
                return ResultFailures.conflict(
                    f"Application number {application.application_number} already exists",
                    application_number=application.application_number,
                )
            self._records[application.application_number] = application
        return Result.success(application)

    def get(self, application_number: str) -> Result[Application]:
        with self._lock:
            application = self._records.get(application_number)
        if application is None:
            return ResultFailures.not_found("Application", application_number)
        return Result.success(application)

    def update(
        self,
        application: Application,
        expected_version: int,
        expected_status: ApplicationStatus,
    ) -> Result[Application]:
        number = application.application_number
        with self._lock:
            current = self._records.get(number)
            if current is None:
                return ResultFailures.not_found("Application", number)
            if current.version != expected_version or current.status is not expected_status:
                return ResultFailures.concurrent_modification(
                    f"Application {number} changed since it was read",
                    application_number=number,
                    expected_status=expected_status.value,
                    current_status=current.status.value,
                    expected_version=expected_version,
                    current_version=current.version,
                )
            stored = application.model_copy(update={"version": expected_version + 1})
            self._records[number] = stored
        return Result.success(stored)

    def delete(self, application_number: str, expected_version: int | None = None) -> Result[str]:
        with self._lock:
            current = self._records.get(application_number)
            if current is None:
                return ResultFailures.not_found("Application", application_number)
            if expected_version is not None and current.version != expected_version:
                return ResultFailures.concurrent_modification(
                    f"Application {application_number} changed since it was read",
                    application_number=application_number,
                    current_status=current.status.value,
                )
            del self._records[application_number]
        return Result.success(application_number)

    def list_by_owner(self, owner_id: str) -> Result[list[Application]]:
        return self._select(lambda app: app.owner_id == owner_id)

    def list_by_visa_type(self, visa_type_code: str) -> Result[list[Application]]:
        return self._select(lambda app: app.visa_type_code == visa_type_code)

    def list_all(self) -> Result[list[Application]]:
        return self._select(lambda app: True)

    def _select(self, predicate: Callable[[Application], bool]) -> Result[list[Application]]:
        with self._lock:
            selected = [app for app in self._records.values() if predicate(app)]
        selected.sort(key=lambda app: app.created_at, reverse=True)
        return Result.success(selected)


class InMemoryVisaTypeRepository:
    def __init__(self) -> None:
        self._records: dict[str, VisaTypeDefinition] = {}
        self._lock = threading.Lock()

    def add(self, definition: VisaTypeDefinition) -> Result[VisaTypeDefinition]:
        with self._lock:
            clash = self._identity_clash(definition, ignore_code=None)
            if clash is not None:
                return clash
            self._records[definition.code] = definition
        return Result.success(definition)

    def get(self, code: str) -> Result[VisaTypeDefinition]:
        with self._lock:
            definition = self._records.get(code.strip().upper())
        if definition is None:
            return ResultFailures.not_found("Visa type", code)
        return Result.success(definition)

    def replace(self, code: str, definition: VisaTypeDefinition) -> Result[VisaTypeDefinition]:
        with self._lock:
            if code not in self._records:
                return ResultFailures.not_found("Visa type", code)
            clash = self._identity_clash(definition, ignore_code=code)
            if clash is not None:
                return clash
            definition = definition.model_copy(
                update={"statistics": self._records[code].statistics}
            )
            del self._records[code]
            self._records[definition.code] = definition
        return Result.success(definition)

    def save_statistics(self, code: str, statistics: VisaStatistics) -> Result[VisaStatistics]:
        with self._lock:
            definition = self._records.get(code)
            if definition is None:
                return ResultFailures.not_found("Visa type", code)
            self._records[code] = definition.model_copy(update={"statistics": statistics})
        return Result.success(statistics)

    def list_all(self) -> Result[list[VisaTypeDefinition]]:
        with self._lock:
            definitions = sorted(self._records.values(), key=lambda d: d.name)
        return Result.success(definitions)

    def _identity_clash(
        self, definition: VisaTypeDefinition, ignore_code: str | None
    ) -> Result[VisaTypeDefinition] | None:
        for code, existing in self._records.items():
            if code == ignore_code:
                continue
            if code == definition.code:
                return ResultFailures.conflict(
                    f"Visa type code {definition.code} already exists", code=definition.code
                )
            if existing.name == definition.name:
                return ResultFailures.conflict(
                    f"Visa type name {definition.name!r} already exists", name=definition.name
                )
        return None


class InMemoryDocumentRepository:
    def __init__(self) -> None:
        self._records: dict[str, DocumentRecord] = {}
        self._lock = threading.Lock()

    def add(self, record: DocumentRecord) -> Result[DocumentRecord]:
        with self._lock:
            if record.handle in self._records:
                return ResultFailures.conflict(
                    f"Document {record.handle} is already registered", handle=record.handle
                )
            self._records[record.handle] = record
        return Result.success(record)

    def get(self, handle: str) -> Result[DocumentRecord]:
        with self._lock:
            record = self._records.get(handle)
        if record is None:
            return ResultFailures.not_found("Document", handle)
        return Result.success(record)

    def update(self, record: DocumentRecord) -> Result[DocumentRecord]:
        with self._lock:
            if record.handle not in self._records:
                return ResultFailures.not_found("Document", record.handle)
            self._records[record.handle] = record
        return Result.success(record)

    def delete(self, handle: str) -> Result[str]:
        with self._lock:
            if self._records.pop(handle, None) is None:
                return ResultFailures.not_found("Document", handle)
        return Result.success(handle)

    def list_by_owner(self, owner_id: str) -> Result[list[DocumentRecord]]:
        with self._lock:
            records = [r for r in self._records.values() if r.owner_id == owner_id]
        return Result.success(sorted(records, key=lambda r: r.uploaded_at, reverse=True))

    def list_by_application(self, application_number: str) -> Result[list[DocumentRecord]]:
        with self._lock:
            records = [
                r for r in self._records.values() if r.application_number == application_number
            ]
        return Result.success(sorted(records, key=lambda r: r.uploaded_at, reverse=True))

    def list_expired(self, now: datetime) -> Result[list[DocumentRecord]]:
        with self._lock:
            records = [r for r in self._records.values() if r.is_expired(now)]
        return Result.success(records)


class InMemorySequenceCounter:
    def __init__(self) -> None:
        self._values: dict[str, int] = {}
        self._lock = threading.Lock()

    def next_value(self, key: str) -> Result[int]:
        with self._lock:
            value = self._values.get(key, 0) + 1
            self._values[key] = value
        return Result.success(value)


class InMemoryDocumentStorage:
    """Stand-in for the external file store; objects are registered with `put`."""

    def __init__(self) -> None:
        self._objects: dict[str, StoredDocument] = {}
        self._lock = threading.Lock()

    def put(self, document: StoredDocument) -> StoredDocument:
        with self._lock:
            self._objects[document.handle] = document
        return document

    def resolve_document(self, handle: str) -> Result[StoredDocument]:
        with self._lock:
            document = self._objects.get(handle)
        if document is None:
            return ResultFailures.not_found("Stored document", handle)
        return Result.success(document)

    def delete_document(self, handle: str) -> Result[str]:
        with self._lock:
            if self._objects.pop(handle, None) is None:
                return ResultFailures.not_found("Stored document", handle)
        return Result.success(handle)


class LoggingEventPublisher:
    """Publisher used when no notification endpoint is configured."""

    def publish(self, event: LifecycleEvent) -> Result[LifecycleEvent]:
        log.info("events.published", **event.to_payload())
        return Result.success(event)
