"""
Unit tests for the HTTP adapters — document storage service and event webhook.

Uses respx to mock httpx HTTP calls (never makes real HTTP requests).

Test categories per adapter:
  - Success: correct response → Result.success
  - Not found: 404 → Result.failure(NOT_FOUND)
  - Server error: 500 → Result.failure(EXTERNAL_SERVICE_ERROR)
  - Timeout/network: retried, then Result.failure (never raises)
  - Malformed response: → Result.failure (never raises)
"""

from __future__ import annotations

from uuid import uuid4

import httpx
import pytest
import respx

from evisa_lifecycle.adapters.http_client import HttpDocumentStorage, HttpEventPublisher
from evisa_lifecycle.adapters.memory import InMemoryDocumentRepository
from evisa_lifecycle.domain.models import ApplicationStatus, DocumentType, LifecycleEvent
from evisa_lifecycle.railway import ErrorCode, ResultAssertions
from evisa_lifecycle.registry import DocumentRegistry
from tests.support import APPLICANT, NOW, FrozenClock

STORAGE_URL = "https://files.example.com/api/"
DOCUMENT_URL = "https://files.example.com/api/documents/doc-42"
WEBHOOK_URL = "https://notify.example.com/hooks/evisa"


@pytest.fixture()
def storage() -> HttpDocumentStorage:
    return HttpDocumentStorage(base_url=STORAGE_URL, timeout=5)


@pytest.fixture()
def publisher() -> HttpEventPublisher:
    return HttpEventPublisher(webhook_url=WEBHOOK_URL, timeout=5)


@pytest.fixture()
def event() -> LifecycleEvent:
    return LifecycleEvent(
        application_id=uuid4(),
        application_number="EVISA2026000001",
        owner_id="user-1",
        from_status=ApplicationStatus.DRAFT,
        to_status=ApplicationStatus.SUBMITTED,
        note="Application submitted",
        notify=True,
        occurred_at=NOW,
    )


# ═══════════════════════════════════════════════════════════════════════
# Document storage — resolve
# ═══════════════════════════════════════════════════════════════════════


class TestResolveDocument:
    @respx.mock
    def test_returns_stored_document(self, storage: HttpDocumentStorage) -> None:
        """
        GIVEN the storage service knows the handle
        WHEN resolve_document is called
        THEN it returns the type, verification flag and metadata.
        """
        respx.get(DOCUMENT_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "handle": "doc-42",
                    "type": "passport_copy",
                    "verified": True,
                    "metadata": {"filename": "passport.pdf", "size_bytes": 1024},
                },
            )
        )
        stored = ResultAssertions.assert_success(storage.resolve_document("doc-42"))
        assert stored.type is DocumentType.PASSPORT_COPY
        assert stored.verified
        assert stored.metadata["filename"] == "passport.pdf"

    @respx.mock
    def test_404_is_not_found(self, storage: HttpDocumentStorage) -> None:
        respx.get(DOCUMENT_URL).mock(return_value=httpx.Response(404))
        result = storage.resolve_document("doc-42")
        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)
        ResultAssertions.assert_failure_detail(result, "identifier", "doc-42")

    @respx.mock
    def test_unknown_handle_reaches_registry_as_not_found(self, storage: HttpDocumentStorage) -> None:
        """
        GIVEN a storage service that does not know the handle
        WHEN the registry records an upload for it
        THEN the registry reports NOT_FOUND after a single request.
        """
        route = respx.get(DOCUMENT_URL).mock(return_value=httpx.Response(404))
        registry = DocumentRegistry(InMemoryDocumentRepository(), storage, FrozenClock())

        result = registry.register_upload(APPLICANT, "doc-42")

        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)
        ResultAssertions.assert_failure_detail(result, "resource", "Stored document")
        assert route.call_count == 1

    @respx.mock
    def test_500_is_external_service_error(self, storage: HttpDocumentStorage) -> None:
        respx.get(DOCUMENT_URL).mock(return_value=httpx.Response(500))
        ResultAssertions.assert_failure(storage.resolve_document("doc-42"), ErrorCode.EXTERNAL_SERVICE_ERROR)

    @respx.mock
    def test_unknown_document_type_is_failure(self, storage: HttpDocumentStorage) -> None:
        respx.get(DOCUMENT_URL).mock(return_value=httpx.Response(200, json={"type": "selfie"}))
        ResultAssertions.assert_failure(storage.resolve_document("doc-42"), ErrorCode.EXTERNAL_SERVICE_ERROR)

    @respx.mock
    def test_non_json_body_is_failure(self, storage: HttpDocumentStorage) -> None:
        respx.get(DOCUMENT_URL).mock(return_value=httpx.Response(200, content=b"<html>"))
        ResultAssertions.assert_failure(storage.resolve_document("doc-42"))

    @respx.mock
    def test_timeout_is_retried_then_fails(self, storage: HttpDocumentStorage) -> None:
        """
        GIVEN a storage service that keeps timing out
        WHEN resolve_document is called
        THEN the call is attempted three times and returns a failure.
        """
        route = respx.get(DOCUMENT_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
        result = storage.resolve_document("doc-42")
        ResultAssertions.assert_failure(result, ErrorCode.EXTERNAL_SERVICE_ERROR)
        assert route.call_count == 3

    @respx.mock
    def test_transient_error_recovers(self, storage: HttpDocumentStorage) -> None:
        respx.get(DOCUMENT_URL).mock(
            side_effect=[
                httpx.ConnectError("refused"),
                httpx.Response(200, json={"type": "photo"}),
            ]
        )
        stored = ResultAssertions.assert_success(storage.resolve_document("doc-42"))
        assert stored.handle == "doc-42"
        assert stored.type is DocumentType.PHOTO


# ═══════════════════════════════════════════════════════════════════════
# Document storage — delete
# ═══════════════════════════════════════════════════════════════════════


class TestDeleteDocument:
    @respx.mock
    def test_delete_success(self, storage: HttpDocumentStorage) -> None:
        route = respx.delete(DOCUMENT_URL).mock(return_value=httpx.Response(204))
        assert storage.delete_document("doc-42").value() == "doc-42"
        assert route.called

    @respx.mock
    def test_delete_404_is_not_found(self, storage: HttpDocumentStorage) -> None:
        respx.delete(DOCUMENT_URL).mock(return_value=httpx.Response(404))
        ResultAssertions.assert_failure(storage.delete_document("doc-42"), ErrorCode.NOT_FOUND)

    @respx.mock
    def test_delete_server_error(self, storage: HttpDocumentStorage) -> None:
        respx.delete(DOCUMENT_URL).mock(return_value=httpx.Response(503))
        ResultAssertions.assert_failure(storage.delete_document("doc-42"), ErrorCode.EXTERNAL_SERVICE_ERROR)


# ═══════════════════════════════════════════════════════════════════════
# Event publisher
# ═══════════════════════════════════════════════════════════════════════


class TestEventPublisher:
    @respx.mock
    def test_posts_event_payload(self, publisher: HttpEventPublisher, event: LifecycleEvent) -> None:
        route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(202))
        assert ResultAssertions.assert_success(publisher.publish(event)) is event
        sent = route.calls.last.request
        assert b'"toStatus":"submitted"' in sent.content.replace(b" ", b"")
        assert b"EVISA2026000001" in sent.content

    @respx.mock
    def test_rejected_delivery_is_failure(self, publisher: HttpEventPublisher, event: LifecycleEvent) -> None:
        respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(400))
        ResultAssertions.assert_failure(publisher.publish(event), ErrorCode.EXTERNAL_SERVICE_ERROR)

    @respx.mock
    def test_network_error_never_raises(self, publisher: HttpEventPublisher, event: LifecycleEvent) -> None:
        respx.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectError("unreachable"))
        error = ResultAssertions.assert_failure(publisher.publish(event), ErrorCode.EXTERNAL_SERVICE_ERROR)
        assert "unreachable" in error.details["cause"]
