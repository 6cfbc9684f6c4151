"""
PostgreSQL repository adapters — applications, visa types, documents, counters.

Adapter layer — implements the storage ports using psycopg (v3) for sync
PostgreSQL access with parameterized queries.

Each record is stored as a JSONB document next to the columns it is looked
up or filtered by:

  Application     → applications (number, id, owner, visa type, status, version)
  VisaTypeDefinition → visa_types (code, unique name, visibility flags)
  DocumentRecord  → documents (handle, owner, application, expiry)
  SequenceCounter → application_sequences (key, last value)

Every write is a single statement in its own transaction. Application
updates are compare-and-set:

    UPDATE applications SET ... WHERE application_number = %s
                                  AND version = %s AND status = %s

so a stale writer touches zero rows and gets CONCURRENT_MODIFICATION back.
No ORM — raw parameterized SQL for maximum control and transparency.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

import psycopg
import structlog
from psycopg import errors
from psycopg.types.json import Jsonb

from evisa_lifecycle.domain.models import (
    Application,
    ApplicationStatus,
    DocumentRecord,
    VisaStatistics,
    VisaTypeDefinition,
)
from evisa_lifecycle.railway import ErrorCode, Result, ResultFailures

log = structlog.get_logger()

T = TypeVar("T")

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS visa_types (
    code        VARCHAR(10) PRIMARY KEY,
    name        VARCHAR(100) NOT NULL UNIQUE,
    category    TEXT NOT NULL,
    is_active   BOOLEAN NOT NULL,
    is_public   BOOLEAN NOT NULL,
    definition  JSONB NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS applications (
    application_number  TEXT PRIMARY KEY,
    id                  UUID NOT NULL UNIQUE,
    owner_id            TEXT NOT NULL,
    visa_type_code      TEXT NOT NULL,
    status              TEXT NOT NULL,
    version             INTEGER NOT NULL,
    created_at          TIMESTAMPTZ NOT NULL,
    updated_at          TIMESTAMPTZ NOT NULL,
    record              JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_applications_owner ON applications (owner_id);
CREATE INDEX IF NOT EXISTS ix_applications_visa_type ON applications (visa_type_code);
CREATE INDEX IF NOT EXISTS ix_applications_status ON applications (status);

CREATE TABLE IF NOT EXISTS documents (
    handle              TEXT PRIMARY KEY,
    owner_id            TEXT NOT NULL,
    application_number  TEXT,
    type                TEXT NOT NULL,
    status              TEXT NOT NULL,
    expires_at          TIMESTAMPTZ,
    uploaded_at         TIMESTAMPTZ NOT NULL,
    record              JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_documents_owner ON documents (owner_id);
CREATE INDEX IF NOT EXISTS ix_documents_application ON documents (application_number);

CREATE TABLE IF NOT EXISTS application_sequences (
    sequence_key  TEXT PRIMARY KEY,
    value         BIGINT NOT NULL
);
"""

_INSERT_APPLICATION = """
INSERT INTO applications (
    application_number, id, owner_id, visa_type_code, status, version,
    created_at, updated_at, record
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
"""

_UPDATE_APPLICATION = """
UPDATE applications
   SET visa_type_code = %s, status = %s, version = %s, updated_at = %s, record = %s
 WHERE application_number = %s AND version = %s AND status = %s
"""

_SELECT_APPLICATION = "SELECT record, version FROM applications"

_INSERT_VISA_TYPE = """
INSERT INTO visa_types (code, name, category, is_active, is_public, definition)
VALUES (%s, %s, %s, %s, %s, %s)
"""

_REPLACE_VISA_TYPE = """
UPDATE visa_types
   SET code = %s, name = %s, category = %s, is_active = %s, is_public = %s,
       definition = %s || jsonb_build_object('statistics', definition->'statistics'),
       updated_at = now()
 WHERE code = %s
RETURNING definition
"""

_SAVE_STATISTICS = """
UPDATE visa_types
   SET definition = jsonb_set(definition, '{statistics}', %s), updated_at = now()
 WHERE code = %s
"""

_INSERT_DOCUMENT = """
INSERT INTO documents (
    handle, owner_id, application_number, type, status, expires_at, uploaded_at, record
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
"""

_UPDATE_DOCUMENT = """
UPDATE documents
   SET owner_id = %s, application_number = %s, type = %s, status = %s,
       expires_at = %s, record = %s
 WHERE handle = %s
"""

_NEXT_SEQUENCE = """
INSERT INTO application_sequences (sequence_key, value) VALUES (%s, 1)
ON CONFLICT (sequence_key)
DO UPDATE SET value = application_sequences.value + 1
RETURNING value
"""


def ensure_schema(dsn: str) -> Result[str]:
    """Create tables and indexes if they do not exist yet."""

    def _create() -> str:
        with psycopg.connect(dsn) as conn, conn.transaction(), conn.cursor() as cur:
            cur.execute(SCHEMA_DDL)
        log.info("repository.schema_ready")
        return "schema ready"

    return Result.from_computation(_create, ErrorCode.DATABASE_ERROR, "Failed to create schema")


class _PsycopgAdapter:
    """Shared connection handling: one connection and transaction per operation."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def _run(self, work: Callable[[psycopg.Cursor[Any]], Result[T]], message: str) -> Result[T]:
        """
        Run `work` inside a transaction.

        `work` returns a Result for the conditions it recognises (missing
        rows, stale versions); any driver exception lands on DATABASE_ERROR
        and the transaction is rolled back.
        """

        def _in_transaction() -> Result[T]:
            with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
                return work(cur)

        return Result.from_computation(
            _in_transaction, ErrorCode.DATABASE_ERROR, message
        ).flat_map(lambda inner: inner)

    def _insert(
        self,
        work: Callable[[psycopg.Cursor[Any]], Result[T]],
        message: str,
        conflict_message: str,
        **conflict_details: Any,
    ) -> Result[T]:
        """Like `_run`, but a unique-key violation becomes CONFLICT (after rollback)."""
        try:
            with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
                return work(cur)
        except errors.UniqueViolation as e:
            return Result.failure(
                ErrorCode.CONFLICT, conflict_message, {**conflict_details, "cause": str(e)}, e
            )
        except Exception as e:
            return Result.failure(ErrorCode.DATABASE_ERROR, message, {"cause": str(e)}, e)


# ─────────────────────── Applications ───────────────────────


def _application_from_row(row: tuple[Any, ...]) -> Application:
    record, version = row
    return Application.model_validate({**record, "version": version})


class PsycopgApplicationRepository(_PsycopgAdapter):
    """Implements the ApplicationRepository port."""

    def add(self, application: Application) -> Result[Application]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[Application]:
            cur.execute(
                _INSERT_APPLICATION,
                (
                    application.application_number,
                    application.id,
                    application.owner_id,
                    application.visa_type_code,
                    application.status.value,
                    application.version,
                    application.created_at,
                    application.updated_at,
                    Jsonb(application.model_dump(mode="json")),
                ),
            )
            log.info(
                "repository.application_added",
                application_number=application.application_number,
                owner_id=application.owner_id,
            )
            return Result.success(application)

        return self._insert(
            _work,
            "Failed to store application",
            f"Application {application.application_number} already exists",
            application_number=application.application_number,
        )

    def get(self, application_number: str) -> Result[Application]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[Application]:
            cur.execute(
                _SELECT_APPLICATION + " WHERE application_number = %s", (application_number,)
            )
            row = cur.fetchone()
            if row is None:
                return ResultFailures.not_found("Application", application_number)
            return Result.success(_application_from_row(row))

        return self._run(_work, "Failed to load application")

    def update(
        self,
        application: Application,
        expected_version: int,
        expected_status: ApplicationStatus,
    ) -> Result[Application]:
        number = application.application_number
        stored = application.model_copy(update={"version": expected_version + 1})

        def _work(cur: psycopg.Cursor[Any]) -> Result[Application]:
            cur.execute(
                _UPDATE_APPLICATION,
                (
                    stored.visa_type_code,
                    stored.status.value,
                    stored.version,
                    stored.updated_at,
                    Jsonb(stored.model_dump(mode="json")),
                    number,
                    expected_version,
                    expected_status.value,
                ),
            )
            if cur.rowcount == 1:
                return Result.success(stored)
            return self._stale_write(cur, number, expected_version, expected_status)

        return self._run(_work, "Failed to update application")

    def _stale_write(
        self,
        cur: psycopg.Cursor[Any],
        number: str,
        expected_version: int,
        expected_status: ApplicationStatus,
    ) -> Result[Application]:
        cur.execute(
            "SELECT status, version FROM applications WHERE application_number = %s", (number,)
        )
        row = cur.fetchone()
        if row is None:
            return ResultFailures.not_found("Application", number)
        current_status, current_version = row
        log.warning(
            "repository.stale_write",
            application_number=number,
            expected_version=expected_version,
            current_version=current_version,
        )
        return ResultFailures.concurrent_modification(
            f"Application {number} changed since it was read",
            application_number=number,
            expected_status=expected_status.value,
            current_status=current_status,
            expected_version=expected_version,
            current_version=current_version,
        )

    def delete(self, application_number: str, expected_version: int | None = None) -> Result[str]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[str]:
            if expected_version is None:
                cur.execute(
                    "DELETE FROM applications WHERE application_number = %s",
                    (application_number,),
                )
            else:
                cur.execute(
                    "DELETE FROM applications WHERE application_number = %s AND version = %s",
                    (application_number, expected_version),
                )
            if cur.rowcount == 1:
                return Result.success(application_number)
            cur.execute(
                "SELECT status FROM applications WHERE application_number = %s",
                (application_number,),
            )
            row = cur.fetchone()
            if row is None:
                return ResultFailures.not_found("Application", application_number)
            return ResultFailures.concurrent_modification(
                f"Application {application_number} changed since it was read",
                application_number=application_number,
                current_status=row[0],
            )

        return self._run(_work, "Failed to delete application")

    def list_by_owner(self, owner_id: str) -> Result[list[Application]]:
        return self._select(" WHERE owner_id = %s", (owner_id,))

    def list_by_visa_type(self, visa_type_code: str) -> Result[list[Application]]:
        return self._select(" WHERE visa_type_code = %s", (visa_type_code,))

    def list_all(self) -> Result[list[Application]]:
        return self._select("", ())

    def _select(self, where: str, params: tuple[Any, ...]) -> Result[list[Application]]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[list[Application]]:
            cur.execute(_SELECT_APPLICATION + where + " ORDER BY created_at DESC", params)
            return Result.success([_application_from_row(row) for row in cur.fetchall()])

        return self._run(_work, "Failed to list applications")


# ─────────────────────── Visa types ───────────────────────


def _visa_type_params(definition: VisaTypeDefinition) -> tuple[Any, ...]:
    return (
        definition.code,
        definition.name,
        definition.category.value,
        definition.settings.is_active,
        definition.settings.is_public,
        Jsonb(definition.model_dump(mode="json")),
    )


class PsycopgVisaTypeRepository(_PsycopgAdapter):
    """Implements the VisaTypeRepository port; code and name are unique keys."""

    def add(self, definition: VisaTypeDefinition) -> Result[VisaTypeDefinition]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[VisaTypeDefinition]:
            cur.execute(_INSERT_VISA_TYPE, _visa_type_params(definition))
            return Result.success(definition)

        return self._insert(
            _work,
            "Failed to store visa type",
            f"Visa type {definition.code} / {definition.name!r} already exists",
            code=definition.code,
            name=definition.name,
        )

    def get(self, code: str) -> Result[VisaTypeDefinition]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[VisaTypeDefinition]:
            cur.execute("SELECT definition FROM visa_types WHERE code = %s", (code.strip().upper(),))
            row = cur.fetchone()
            if row is None:
                return ResultFailures.not_found("Visa type", code)
            return Result.success(VisaTypeDefinition.model_validate(row[0]))

        return self._run(_work, "Failed to load visa type")

    def replace(self, code: str, definition: VisaTypeDefinition) -> Result[VisaTypeDefinition]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[VisaTypeDefinition]:
            cur.execute(_REPLACE_VISA_TYPE, (*_visa_type_params(definition), code))
            row = cur.fetchone()
            if row is None:
                return ResultFailures.not_found("Visa type", code)
            return Result.success(VisaTypeDefinition.model_validate(row[0]))

        return self._insert(
            _work,
            "Failed to update visa type",
            f"Visa type {definition.code} / {definition.name!r} already exists",
            code=definition.code,
            name=definition.name,
        )

    def save_statistics(self, code: str, statistics: VisaStatistics) -> Result[VisaStatistics]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[VisaStatistics]:
            cur.execute(_SAVE_STATISTICS, (Jsonb(statistics.model_dump(mode="json")), code))
            if cur.rowcount == 0:
                return ResultFailures.not_found("Visa type", code)
            return Result.success(statistics)

        return self._run(_work, "Failed to save visa type statistics")

    def list_all(self) -> Result[list[VisaTypeDefinition]]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[list[VisaTypeDefinition]]:
            cur.execute("SELECT definition FROM visa_types ORDER BY name")
            return Result.success(
                [VisaTypeDefinition.model_validate(row[0]) for row in cur.fetchall()]
            )

        return self._run(_work, "Failed to list visa types")


# ─────────────────────── Documents ───────────────────────


class PsycopgDocumentRepository(_PsycopgAdapter):
    """Implements the DocumentRepository port."""

    def add(self, record: DocumentRecord) -> Result[DocumentRecord]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[DocumentRecord]:
            cur.execute(
                _INSERT_DOCUMENT,
                (
                    record.handle,
                    record.owner_id,
                    record.application_number,
                    record.type.value,
                    record.status.value,
                    record.expires_at,
                    record.uploaded_at,
                    Jsonb(record.model_dump(mode="json")),
                ),
            )
            return Result.success(record)

        return self._insert(
            _work,
            "Failed to store document",
            f"Document {record.handle} is already registered",
            handle=record.handle,
        )

    def get(self, handle: str) -> Result[DocumentRecord]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[DocumentRecord]:
            cur.execute("SELECT record FROM documents WHERE handle = %s", (handle,))
            row = cur.fetchone()
            if row is None:
                return ResultFailures.not_found("Document", handle)
            return Result.success(DocumentRecord.model_validate(row[0]))

        return self._run(_work, "Failed to load document")

    def update(self, record: DocumentRecord) -> Result[DocumentRecord]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[DocumentRecord]:
            cur.execute(
                _UPDATE_DOCUMENT,
                (
                    record.owner_id,
                    record.application_number,
                    record.type.value,
                    record.status.value,
                    record.expires_at,
                    Jsonb(record.model_dump(mode="json")),
                    record.handle,
                ),
            )
            if cur.rowcount == 0:
                return ResultFailures.not_found("Document", record.handle)
            return Result.success(record)

        return self._run(_work, "Failed to update document")

    def delete(self, handle: str) -> Result[str]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[str]:
            cur.execute("DELETE FROM documents WHERE handle = %s", (handle,))
            if cur.rowcount == 0:
                return ResultFailures.not_found("Document", handle)
            return Result.success(handle)

        return self._run(_work, "Failed to delete document")

    def list_by_owner(self, owner_id: str) -> Result[list[DocumentRecord]]:
        return self._select(" WHERE owner_id = %s ORDER BY uploaded_at DESC", (owner_id,))

    def list_by_application(self, application_number: str) -> Result[list[DocumentRecord]]:
        return self._select(
            " WHERE application_number = %s ORDER BY uploaded_at DESC", (application_number,)
        )

    def list_expired(self, now: datetime) -> Result[list[DocumentRecord]]:
        return self._select(" WHERE expires_at IS NOT NULL AND expires_at <= %s", (now,))

    def _select(self, clause: str, params: tuple[Any, ...]) -> Result[list[DocumentRecord]]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[list[DocumentRecord]]:
            cur.execute("SELECT record FROM documents" + clause, params)
            return Result.success([DocumentRecord.model_validate(row[0]) for row in cur.fetchall()])

        return self._run(_work, "Failed to list documents")


# ─────────────────────── Sequence counter ───────────────────────


class PsycopgSequenceCounter(_PsycopgAdapter):
    """
    Atomic per-key counter backed by a single upsert.

    Concurrent callers serialise on the row lock taken by ON CONFLICT DO
    UPDATE, so each sees a distinct value.
    """

    def next_value(self, key: str) -> Result[int]:
        def _work(cur: psycopg.Cursor[Any]) -> Result[int]:
            cur.execute(_NEXT_SEQUENCE, (key,))
            row = cur.fetchone()
            if row is None:  # pragma: no cover
                return ResultFailures.database_error(f"Counter {key} returned no row")
            return Result.success(int(row[0]))

        return self._run(_work, f"Failed to advance counter {key}")
