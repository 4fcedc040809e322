"""
HTTP surface tests: lease signing endpoints, the Connect listener and health.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from leasing_esign.api.dependencies.database import get_db
from leasing_esign.api.dependencies.esignature import (
    get_signature_service,
    get_webhook_processor_factory,
    get_webhook_verifier,
)
from leasing_esign.core.exceptions import (
    ConfigurationError,
    EnvelopeDispatchError,
    ESignatureError,
    NotFoundError,
)
from leasing_esign.integrations.esignature.base import EnvelopeResponse, SigningUrlInfo
from leasing_esign.integrations.esignature.webhook import WebhookVerifier
from leasing_esign.main import create_application
from leasing_esign.services.signature_service import SignatureService
from leasing_esign.services.webhook_processor import WebhookEventProcessor, WebhookOutcome

from factories import WEBHOOK_SECRET, make_webhook_bytes, sign


@pytest.fixture
def signature_service():
    service = Mock(spec=SignatureService)
    service.send_lease_for_signature = AsyncMock(
        return_value=EnvelopeResponse(envelope_id="env-new", status="sent", status_date_time="2024-05-01T12:00:00Z")
    )
    service.generate_signing_url = AsyncMock(
        return_value=SigningUrlInfo(
            url="https://demo.docusign.net/Signing/abc",
            envelope_id="env-embedded",
            expires_at=datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc),
            recipient_email="tenant@example.com",
        )
    )
    service.get_signed_document_url = AsyncMock(return_value="https://s3.example.com/signed.pdf")
    service.get_signed_document_content = AsyncMock(return_value=b"%PDF-1.4 signed")
    return service


@pytest.fixture
def processor():
    processor = Mock(spec=WebhookEventProcessor)
    processor.handle = AsyncMock(return_value=WebhookOutcome.SIGNED)
    return processor


@pytest.fixture
def session():
    session = Mock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def app(settings, signature_service, processor, session):
    application = create_application(settings, init_db=False)

    async def override_get_db():
        yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_signature_service] = lambda: signature_service
    application.dependency_overrides[get_webhook_verifier] = lambda: WebhookVerifier(WEBHOOK_SECRET)
    application.dependency_overrides[get_webhook_processor_factory] = lambda: (lambda db: processor)
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


class TestSendForSignatureEndpoint:

    def test_sends_with_defaults(self, client, signature_service):
        response = client.post("/leases/lease-123/send-for-signature")

        assert response.status_code == 200
        data = response.json()
        assert data["envelopeId"] == "env-new"
        assert data["status"] == "sent"
        assert data["statusDateTime"] == "2024-05-01T12:00:00Z"
        signature_service.send_lease_for_signature.assert_awaited_once_with("lease-123", None, None)

    def test_camel_case_request_body(self, client, signature_service):
        response = client.post(
            "/leases/lease-123/send-for-signature",
            json={
                "recipientEmail": "agent@example.com",
                "signaturePosition": {"pageNumber": 3, "xPosition": 40, "yPosition": 60},
            },
        )

        assert response.status_code == 200
        lease_id, email, position = signature_service.send_lease_for_signature.await_args.args
        assert email == "agent@example.com"
        assert (position.page_number, position.x_position, position.y_position) == (3, 40, 60)

    def test_invalid_email_rejected(self, client, signature_service):
        response = client.post("/leases/lease-123/send-for-signature", json={"recipientEmail": "not-an-email"})

        assert response.status_code == 422
        signature_service.send_lease_for_signature.assert_not_awaited()

    @pytest.mark.parametrize(
        "error, expected_status",
        [
            (NotFoundError("Lease not found with ID lease-123"), 404),
            (EnvelopeDispatchError("Recipient email is required", error_code="invalid_request"), 400),
            (EnvelopeDispatchError("Failed to send lease lease-123 for signature: boom"), 502),
            (ESignatureError("DocuSign rate limit", error_code="rate_limit"), 502),
            (ConfigurationError("DocuSign is not configured"), 500),
        ],
    )
    def test_error_mapping(self, client, signature_service, error, expected_status):
        signature_service.send_lease_for_signature = AsyncMock(side_effect=error)

        response = client.post("/leases/lease-123/send-for-signature")

        assert response.status_code == expected_status
        assert response.json()["detail"] == error.error_message


class TestSigningUrlEndpoint:

    def test_generates_url(self, client, signature_service):
        response = client.post(
            "/leases/lease-123/generate-signing-url",
            json={"recipientEmail": "tenant@example.com", "recipientName": "Jane Doe"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["signingUrl"] == "https://demo.docusign.net/Signing/abc"
        assert data["envelopeId"] == "env-embedded"
        assert data["expiresAt"].startswith("2024-05-01T12:05:00")
        signature_service.generate_signing_url.assert_awaited_once_with("lease-123", "tenant@example.com", "Jane Doe", None)

    def test_missing_lease_document_is_404(self, client, signature_service):
        signature_service.generate_signing_url = AsyncMock(
            side_effect=NotFoundError("Lease PDF document not found or inaccessible", error_code="lease_document_not_found")
        )

        response = client.post(
            "/leases/lease-123/generate-signing-url",
            json={"recipientEmail": "tenant@example.com", "recipientName": "Jane Doe"},
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Lease PDF document not found or inaccessible"}

    def test_requires_recipient_name(self, client):
        response = client.post("/leases/lease-123/generate-signing-url", json={"recipientEmail": "tenant@example.com"})

        assert response.status_code == 422


class TestSignedDocumentEndpoints:

    def test_download_url(self, client):
        response = client.get("/leases/lease-123/signed-document")

        assert response.status_code == 200
        assert response.json() == {"downloadUrl": "https://s3.example.com/signed.pdf"}

    def test_not_signed_yet(self, client, signature_service):
        signature_service.get_signed_document_url = AsyncMock(
            side_effect=NotFoundError("Signed document not available for lease lease-123")
        )

        response = client.get("/leases/lease-123/signed-document")

        assert response.status_code == 404

    def test_content(self, client):
        response = client.get("/leases/lease-123/signed-document/content")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 signed"


class TestDocuSignWebhookEndpoint:

    def post_webhook(self, client, body: bytes, signature: str | None):
        headers = {"Content-Type": "application/json"}
        if signature is not None:
            headers["X-DocuSign-Signature-1"] = signature
        return client.post("/webhooks/docusign", content=body, headers=headers)

    def test_valid_delivery_processed(self, client, processor):
        body = make_webhook_bytes()

        response = self.post_webhook(client, body, sign(body))

        assert response.status_code == 200
        assert response.json() == {"status": "received"}
        payload = processor.handle.await_args.args[0]
        assert payload.envelope_id == "env-123"
        assert payload.status == "completed"

    def test_missing_signature(self, client, processor):
        response = self.post_webhook(client, make_webhook_bytes(), None)

        assert response.status_code == 401
        assert response.json() == {"detail": "missing_signature"}
        processor.handle.assert_not_awaited()

    def test_tampered_body(self, client, processor):
        body = make_webhook_bytes()
        tampered = make_webhook_bytes(status="voided")

        response = self.post_webhook(client, tampered, sign(body))

        assert response.status_code == 401
        assert response.json() == {"detail": "signature_mismatch"}
        processor.handle.assert_not_awaited()

    def test_secret_not_configured(self, app, client, processor):
        app.dependency_overrides[get_webhook_verifier] = lambda: WebhookVerifier(None)
        body = make_webhook_bytes()

        response = self.post_webhook(client, body, sign(body))

        assert response.status_code == 401
        assert response.json() == {"detail": "secret_not_configured"}

    def test_second_signature_header_accepted(self, client, processor):
        body = make_webhook_bytes()
        headers = {
            "Content-Type": "application/json",
            "X-DocuSign-Signature-1": sign(body, "rotated-out-secret"),
            "X-DocuSign-Signature-2": sign(body),
        }

        response = client.post("/webhooks/docusign", content=body, headers=headers)

        assert response.status_code == 200
        processor.handle.assert_awaited_once()

    def test_processing_failure_still_acknowledged(self, client, processor):
        processor.handle = AsyncMock(side_effect=RuntimeError("database unavailable"))
        body = make_webhook_bytes()

        response = self.post_webhook(client, body, sign(body))

        assert response.status_code == 200
        assert response.json() == {"status": "received"}

    def test_unparseable_payload_acknowledged(self, client, processor):
        body = b'{"event": "envelope-completed", "data": {}}'

        response = self.post_webhook(client, body, sign(body))

        assert response.status_code == 200
        processor.handle.assert_not_awaited()


class TestHealthEndpoint:

    def test_healthy(self, client, session):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["checks"]["database"] == {"status": "ok"}
        session.execute.assert_awaited_once()

    def test_database_unavailable(self, client, session):
        session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["database"]["status"] == "unavailable"


def test_configuration_error_from_dependency(app, client):
    def unconfigured():
        raise ConfigurationError("DocuSign is not configured. Missing: docusign_private_key", error_code="docusign_not_configured")

    app.dependency_overrides[get_signature_service] = unconfigured

    response = client.get("/leases/lease-123/signed-document")

    assert response.status_code == 500
    assert response.json() == {
        "detail": "DocuSign is not configured. Missing: docusign_private_key",
        "code": "docusign_not_configured",
    }
