"""
HTTP adapters — document storage service and notification webhook via httpx.

Adapter layer — implements the DocumentStorage and EventPublisher ports
using httpx for sync HTTP calls.

  DocumentStorage:  GET    {base_url}/documents/{handle}  → StoredDocument
                    DELETE {base_url}/documents/{handle}
  EventPublisher:   POST   {webhook_url}  (LifecycleEvent JSON payload)

Retry/backoff via tenacity on transient errors (network, timeout).
All HTTP errors are captured into Result failures — no exceptions
leak to the business logic layer. A 404 from the storage service is a
NOT_FOUND failure rather than an external-service error.
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from evisa_lifecycle.domain.models import DocumentType, LifecycleEvent, StoredDocument
from evisa_lifecycle.railway import ErrorCode, Result, ResultFailures

log = structlog.get_logger()

_transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=0.1, max=30),
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
    reraise=True,
)


class HttpDocumentStorage:
    """
    Resolve and delete uploaded objects held by the document storage service.

    Implements the DocumentStorage port.
    """

    def __init__(self, base_url: str, timeout: int = 60) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def resolve_document(self, handle: str) -> Result[StoredDocument]:
        """
        Look up the stored object behind `handle`.

        Returns Result[StoredDocument] with the type, verification flag and
        metadata reported by the service, NOT_FOUND for an unknown handle,
        or EXTERNAL_SERVICE_ERROR for anything else.
        """
        return Result.from_computation(
            lambda: self._do_resolve(handle),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Document lookup failed",
        ).flat_map(lambda resolved: resolved)

    def delete_document(self, handle: str) -> Result[str]:
        return Result.from_computation(
            lambda: self._do_delete(handle),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Document deletion failed",
        ).flat_map(lambda deleted: deleted)

    @_transient_retry
    def _do_resolve(self, handle: str) -> Result[StoredDocument]:
        """HTTP GET with retry — exceptions caught by from_computation."""
        with httpx.Client(timeout=self._timeout) as client:
            response = client.get(f"{self._base_url}/documents/{handle}")
            if response.status_code == httpx.codes.NOT_FOUND:
                return ResultFailures.not_found("Stored document", handle)
            response.raise_for_status()
            body = response.json()
            stored = StoredDocument(
                handle=body.get("handle", handle),
                type=DocumentType(body["type"]),
                verified=bool(body.get("verified", False)),
                metadata=dict(body.get("metadata") or {}),
            )
            log.debug("storage.resolved", handle=handle, type=stored.type.value)
            return Result.success(stored)

    @_transient_retry
    def _do_delete(self, handle: str) -> Result[str]:
        with httpx.Client(timeout=self._timeout) as client:
            response = client.delete(f"{self._base_url}/documents/{handle}")
            if response.status_code == httpx.codes.NOT_FOUND:
                return ResultFailures.not_found("Stored document", handle)
            response.raise_for_status()
            log.info("storage.deleted", handle=handle)
            return Result.success(handle)


class HttpEventPublisher:
    """
    POST lifecycle events to the notification service webhook.

    Implements the EventPublisher port.
    """

    def __init__(self, webhook_url: str, timeout: int = 60) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout

    def publish(self, event: LifecycleEvent) -> Result[LifecycleEvent]:
        return Result.from_computation(
            lambda: self._do_publish(event),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Lifecycle event delivery failed",
        )

    @_transient_retry
    def _do_publish(self, event: LifecycleEvent) -> LifecycleEvent:
        with httpx.Client(timeout=self._timeout) as client:
            response = client.post(self._webhook_url, json=event.to_payload())
            response.raise_for_status()
            log.info(
                "events.delivered",
                application_number=event.application_number,
                to_status=event.to_status.value,
            )
            return event
