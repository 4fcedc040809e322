"""
Send-for-signature orchestration tests.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from leasing_esign.core.exceptions import EnvelopeDispatchError, NotFoundError, TransientIOError
from leasing_esign.integrations.esignature.base import EnvelopeResponse, SignaturePosition, SigningUrlInfo
from leasing_esign.integrations.esignature.docusign_adapter import DocuSignClient
from leasing_esign.integrations.storage.s3 import ObjectStorageService
from leasing_esign.models.lease import SignatureStatus
from leasing_esign.services.document_store import SignedDocumentStore
from leasing_esign.services.signature_service import LeaseDocumentLoader, SignatureService

from factories import FakeLeaseRepository, make_lease


PDF_BYTES = b"%PDF-1.4 lease agreement"


@pytest.fixture
def client():
    client = Mock(spec=DocuSignClient)
    client.send = AsyncMock(return_value=EnvelopeResponse(envelope_id="env-new", status="sent"))
    client.create_embedded_envelope = AsyncMock(return_value=EnvelopeResponse(envelope_id="env-embedded", status="sent"))
    client.get_recipient_view_url = AsyncMock(
        return_value=SigningUrlInfo(
            url="https://demo.docusign.net/Signing/abc",
            envelope_id="env-embedded",
            expires_at=datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc),
            recipient_email="tenant@example.com",
        )
    )
    return client


@pytest.fixture
def loader():
    loader = Mock(spec=LeaseDocumentLoader)
    loader.load = AsyncMock(return_value=PDF_BYTES)
    return loader


@pytest.fixture
def store():
    store = Mock(spec=SignedDocumentStore)
    store.download_url = AsyncMock(return_value="https://s3.example.com/signed.pdf")
    store.load = AsyncMock(return_value=PDF_BYTES)
    return store


@pytest.fixture
def leases():
    return FakeLeaseRepository(
        make_lease(envelope_id=None, status=SignatureStatus.DRAFT),
        make_lease(
            lease_id="lease-signed",
            envelope_id="env-done",
            status=SignatureStatus.SIGNED,
            signed_document_ref="signed-leases/lease-signed/env-done.pdf",
        ),
    )


@pytest.fixture
def service(leases, client, loader, store):
    return SignatureService(
        leases,
        client,
        loader,
        store,
        signed_url_ttl_seconds=600,
        default_return_url="https://app.example.com/signing-complete",
    )


class TestSendLeaseForSignature:

    @pytest.mark.asyncio
    async def test_sends_to_tenant_and_records_envelope(self, service, leases, client, loader):
        position = SignaturePosition(page_number=2, x_position=50, y_position=80)

        result = await service.send_lease_for_signature("lease-123", signature_position=position)

        assert result.envelope_id == "env-new"
        loader.load.assert_awaited_once_with("leases/lease-123/lease.pdf")
        client.send.assert_awaited_once_with("lease-123", PDF_BYTES, "tenant@example.com", "Jane Doe", position)

        lease = leases.leases["lease-123"]
        assert lease.docusign_envelope_id == "env-new"
        assert lease.signature_status is SignatureStatus.PENDING_SIGNATURE
        assert lease.sent_for_signature_at is not None

    @pytest.mark.asyncio
    async def test_recipient_override(self, service, client):
        await service.send_lease_for_signature("lease-123", recipient_email="agent@example.com")

        assert client.send.await_args.args[2] == "agent@example.com"

    @pytest.mark.asyncio
    async def test_unknown_lease(self, service, client):
        with pytest.raises(NotFoundError):
            await service.send_lease_for_signature("lease-missing")

        client.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unloadable_document_sent_as_empty_and_rejected(self, service, leases, client, loader):
        loader.load = AsyncMock(side_effect=TransientIOError("download failed"))
        client.send = AsyncMock(
            side_effect=EnvelopeDispatchError("Lease PDF is required to send lease lease-123 for signature", error_code="invalid_request")
        )

        with pytest.raises(EnvelopeDispatchError):
            await service.send_lease_for_signature("lease-123")

        assert client.send.await_args.args[1] == b""
        assert leases.leases["lease-123"].docusign_envelope_id is None


class TestEmbeddedSigningUrl:

    @pytest.mark.asyncio
    async def test_generates_signing_url(self, service, leases, client):
        signing = await service.generate_signing_url("lease-123", "tenant@example.com", "Jane Doe")

        assert signing.url == "https://demo.docusign.net/Signing/abc"
        client.create_embedded_envelope.assert_awaited_once_with("lease-123", PDF_BYTES, "tenant@example.com", "Jane Doe")
        client.get_recipient_view_url.assert_awaited_once_with(
            "env-embedded", "tenant@example.com", "Jane Doe", "https://app.example.com/signing-complete"
        )
        assert leases.leases["lease-123"].docusign_envelope_id == "env-embedded"

    @pytest.mark.asyncio
    async def test_unreadable_document_is_not_found(self, service, leases, client, loader):
        loader.load = AsyncMock(side_effect=TransientIOError("download failed"))

        with pytest.raises(NotFoundError) as exc_info:
            await service.generate_signing_url("lease-123", "tenant@example.com", "Jane Doe")

        assert exc_info.value.error_message == "Lease PDF document not found or inaccessible"
        client.create_embedded_envelope.assert_not_awaited()
        assert leases.leases["lease-123"].docusign_envelope_id is None

    @pytest.mark.asyncio
    async def test_missing_document_reference_is_not_found(self, service, leases, client, loader):
        leases.leases["lease-123"].pdf_document_ref = None

        with pytest.raises(NotFoundError):
            await service.generate_signing_url("lease-123", "tenant@example.com", "Jane Doe")

        loader.load.assert_not_awaited()
        client.create_embedded_envelope.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_return_url(self, service, client):
        await service.generate_signing_url("lease-123", "tenant@example.com", "Jane Doe", "https://other.example.com")

        assert client.get_recipient_view_url.await_args.args[3] == "https://other.example.com"


class TestSignedDocumentAccess:

    @pytest.mark.asyncio
    async def test_signed_document_url(self, service, store):
        url = await service.get_signed_document_url("lease-signed")

        assert url == "https://s3.example.com/signed.pdf"
        store.download_url.assert_awaited_once_with("signed-leases/lease-signed/env-done.pdf", "lease-signed", 600)

    @pytest.mark.asyncio
    async def test_unsigned_lease_has_no_document(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_signed_document_url("lease-123")

        assert exc_info.value.error_code == "signed_document_not_found"

    @pytest.mark.asyncio
    async def test_signed_document_content(self, service, store):
        assert await service.get_signed_document_content("lease-signed") == PDF_BYTES
        store.load.assert_awaited_once_with("signed-leases/lease-signed/env-done.pdf")


class TestLeaseDocumentLoader:

    def test_object_key_from_s3_uri(self):
        assert LeaseDocumentLoader.object_key("s3://lease-docs/leases/lease-123/lease.pdf") == "leases/lease-123/lease.pdf"
        assert LeaseDocumentLoader.object_key("leases/lease-123/lease.pdf") == "leases/lease-123/lease.pdf"

    @pytest.mark.asyncio
    async def test_loads_s3_reference_from_object_storage(self):
        storage = Mock(spec=ObjectStorageService)
        storage.get_bytes = AsyncMock(return_value=PDF_BYTES)

        content = await LeaseDocumentLoader(storage).load("s3://lease-docs/leases/lease-123/lease.pdf")

        assert content == PDF_BYTES
        storage.get_bytes.assert_awaited_once_with("leases/lease-123/lease.pdf")

    @pytest.mark.asyncio
    async def test_loads_http_reference(self):
        storage = Mock(spec=ObjectStorageService)
        loader = LeaseDocumentLoader(storage)

        with patch('aiohttp.ClientSession.get') as mock_get:
            mock_get.return_value.__aenter__.return_value.read = AsyncMock(return_value=PDF_BYTES)
            mock_get.return_value.__aenter__.return_value.status = 200

            content = await loader.load("https://files.example.com/lease.pdf?sig=abc")

        assert content == PDF_BYTES
        storage.get_bytes.assert_not_called()
        await loader.close()

    @pytest.mark.asyncio
    async def test_http_error_is_transient(self):
        loader = LeaseDocumentLoader(Mock(spec=ObjectStorageService))

        with patch('aiohttp.ClientSession.get') as mock_get:
            mock_get.return_value.__aenter__.return_value.status = 403

            with pytest.raises(TransientIOError):
                await loader.load("https://files.example.com/lease.pdf")

        await loader.close()
