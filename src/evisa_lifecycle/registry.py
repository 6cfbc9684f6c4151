"""
Document registry — applicant-owned records of uploaded documents.

The registry never holds file bytes. A record is created from the storage
collaborator's answer for an opaque handle; deleting a record also asks the
storage collaborator to delete the object, best effort: a storage failure
is logged and the record stays deleted.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from evisa_lifecycle.domain.lifecycle import ensure_admin
from evisa_lifecycle.domain.models import (
    Actor,
    DocumentRecord,
    StoredDocument,
    VerificationStatus,
    utc_now,
)
from evisa_lifecycle.domain.ports import DocumentRepository, DocumentStorage
from evisa_lifecycle.railway import ErrorCode, Result, ResultFailures

log = structlog.get_logger()


class DocumentRegistry:
    def __init__(
        self,
        documents: DocumentRepository,
        storage: DocumentStorage,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._documents = documents
        self._storage = storage
        self._clock = clock

    def register_upload(
        self,
        actor: Actor,
        handle: str,
        expires_at: datetime | None = None,
    ) -> Result[DocumentRecord]:
        """Record an object the storage collaborator already holds, owned by `actor`."""
        return (
            self._storage.resolve_document(handle)
            .map(lambda stored: self._new_record(actor, stored, expires_at))
            .flat_map(self._documents.add)
            .peek(
                lambda record: log.info(
                    "registry.registered",
                    handle=record.handle,
                    owner_id=record.owner_id,
                    type=record.type.value,
                )
            )
        )

    def get(self, actor: Actor, handle: str) -> Result[DocumentRecord]:
        return self._documents.get(handle).flat_map(lambda record: _ensure_access(record, actor))

    def list_for_owner(self, actor: Actor, owner_id: str | None = None) -> Result[list[DocumentRecord]]:
        owner = owner_id or actor.id
        if owner != actor.id and not actor.is_admin:
            return ResultFailures.forbidden(
                f"Actor {actor.id} may not list documents of {owner}", actor_id=actor.id
            )
        return self._documents.list_by_owner(owner)

    def verify(self, actor: Actor, handle: str, notes: str | None = None) -> Result[DocumentRecord]:
        return self._set_status(actor, handle, VerificationStatus.VERIFIED, notes)

    def reject(self, actor: Actor, handle: str, notes: str | None = None) -> Result[DocumentRecord]:
        return self._set_status(actor, handle, VerificationStatus.REJECTED, notes)

    def delete(self, actor: Actor, handle: str) -> Result[str]:
        return (
            self.get(actor, handle)
            .flat_map(lambda record: self._documents.delete(record.handle))
            .peek(self._delete_stored_object)
            .peek(lambda h: log.info("registry.deleted", handle=h, actor_id=actor.id))
        )

    def cleanup_expired(self) -> Result[int]:
        """Delete every record whose expiry has passed; returns how many went."""
        now = self._clock()

        def _purge(expired: list[DocumentRecord]) -> Result[int]:
            deleted = 0
            for record in expired:
                result = self._documents.delete(record.handle)
                if result.is_failure():
                    log.warning(
                        "registry.cleanup_skipped", handle=record.handle, error=str(result.error())
                    )
                    continue
                self._delete_stored_object(record.handle)
                deleted += 1
            log.info("registry.cleanup_complete", expired=len(expired), deleted=deleted)
            return Result.success(deleted)

        return self._documents.list_expired(now).flat_map(_purge)

    # ─────────────────────── internals ───────────────────────

    def _new_record(
        self, actor: Actor, stored: StoredDocument, expires_at: datetime | None
    ) -> DocumentRecord:
        meta = stored.metadata
        return DocumentRecord(
            handle=stored.handle,
            owner_id=actor.id,
            type=stored.type,
            status=VerificationStatus.VERIFIED if stored.verified else VerificationStatus.PENDING,
            filename=str(meta.get("filename", "")),
            original_name=str(meta.get("original_name", meta.get("filename", ""))),
            mime_type=str(meta.get("mime_type", "")),
            size_bytes=int(meta.get("size_bytes", 0)),
            expires_at=expires_at,
            uploaded_at=self._clock(),
        )

    def _set_status(
        self,
        actor: Actor,
        handle: str,
        status: VerificationStatus,
        notes: str | None,
    ) -> Result[DocumentRecord]:
        return (
            ensure_admin(actor, f"mark documents {status.value}")
            .flat_map(lambda _: self._documents.get(handle))
            .map(
                lambda record: record.model_copy(
                    update={
                        "status": status,
                        "verified_by": actor.id,
                        "verified_at": self._clock(),
                        "verification_notes": notes,
                    }
                )
            )
            .flat_map(self._documents.update)
            .peek(
                lambda record: log.info(
                    "registry.status_changed", handle=record.handle, status=status.value
                )
            )
        )

    def _delete_stored_object(self, handle: str) -> None:
        Result.from_computation(
            lambda: self._storage.delete_document(handle),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Document deletion raised",
        ).flat_map(lambda deleted: deleted).peek_failure(
            lambda err: log.warning(
                "registry.storage_delete_failed",
                handle=handle,
                error=str(err),
                cause=err.details.get("cause"),
            )
        )


def _ensure_access(record: DocumentRecord, actor: Actor) -> Result[DocumentRecord]:
    if record.owner_id != actor.id and not actor.is_admin:
        return ResultFailures.forbidden(
            f"Actor {actor.id} does not own document {record.handle}", actor_id=actor.id
        )
    return Result.success(record)
