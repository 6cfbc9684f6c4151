"""
Ports — Protocol-based interfaces for storage and external collaborators.

  Domain ← Ports (protocols) ← Adapters (Postgres, in-process, HTTP)

Every method returns Result; adapters catch their own exceptions at the
boundary. Application writes are compare-and-set: `update` and `delete`
only touch the stored record when its version and status still match what
the caller read, otherwise they fail with CONCURRENT_MODIFICATION.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from evisa_lifecycle.domain.models import (
    Application,
    ApplicationStatus,
    DocumentRecord,
    LifecycleEvent,
    StoredDocument,
    VisaStatistics,
    VisaTypeDefinition,
)
from evisa_lifecycle.railway import Result


@runtime_checkable
class ApplicationRepository(Protocol):
    def add(self, application: Application) -> Result[Application]:
        """Insert a new application; CONFLICT when the number is taken."""
        ...

    def get(self, application_number: str) -> Result[Application]: ...

    def update(
        self,
        application: Application,
        expected_version: int,
        expected_status: ApplicationStatus,
    ) -> Result[Application]:
        """
        Replace the stored record if it is still at (expected_version, expected_status).

        The stored record's version becomes expected_version + 1 and the
        returned Application carries it.
        """
        ...

    def delete(self, application_number: str, expected_version: int | None = None) -> Result[str]:
        """Delete by number; with expected_version, only if the record is unchanged."""
        ...

    def list_by_owner(self, owner_id: str) -> Result[list[Application]]: ...

    def list_by_visa_type(self, visa_type_code: str) -> Result[list[Application]]: ...

    def list_all(self) -> Result[list[Application]]: ...


@runtime_checkable
class VisaTypeRepository(Protocol):
    def add(self, definition: VisaTypeDefinition) -> Result[VisaTypeDefinition]:
        """CONFLICT when the code or name is already used."""
        ...

    def get(self, code: str) -> Result[VisaTypeDefinition]: ...

    def replace(self, code: str, definition: VisaTypeDefinition) -> Result[VisaTypeDefinition]:
        """
        Overwrite the definition stored under `code` (which may be renamed).

        The stored statistics are kept; only the aggregator writes them.
        """
        ...

    def save_statistics(self, code: str, statistics: VisaStatistics) -> Result[VisaStatistics]: ...

    def list_all(self) -> Result[list[VisaTypeDefinition]]: ...


@runtime_checkable
class DocumentRepository(Protocol):
    def add(self, record: DocumentRecord) -> Result[DocumentRecord]: ...

    def get(self, handle: str) -> Result[DocumentRecord]: ...

    def update(self, record: DocumentRecord) -> Result[DocumentRecord]: ...

    def delete(self, handle: str) -> Result[str]: ...

    def list_by_owner(self, owner_id: str) -> Result[list[DocumentRecord]]: ...

    def list_by_application(self, application_number: str) -> Result[list[DocumentRecord]]: ...

    def list_expired(self, now: datetime) -> Result[list[DocumentRecord]]: ...


@runtime_checkable
class SequenceCounter(Protocol):
    """
    Atomic keyed counter.

    Each call returns the next value for `key` (1 for a new key); no two
    calls with the same key ever observe the same value.
    """

    def next_value(self, key: str) -> Result[int]: ...


@runtime_checkable
class DocumentStorage(Protocol):
    """Port: the external file store that owns the uploaded bytes."""

    def resolve_document(self, handle: str) -> Result[StoredDocument]: ...

    def delete_document(self, handle: str) -> Result[str]: ...


@runtime_checkable
class EventPublisher(Protocol):
    """Port: hands lifecycle events to the notification collaborator."""

    def publish(self, event: LifecycleEvent) -> Result[LifecycleEvent]: ...
