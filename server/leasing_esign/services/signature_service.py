"""
Outbound signing flows for a lease: emailed envelopes, embedded signing URLs
and access to the stored, fully executed document.
"""

from __future__ import annotations

import asyncio

import aiohttp
from aiohttp import ClientTimeout

from leasing_esign.core.exceptions import NotFoundError, TransientIOError
from leasing_esign.core.logging import get_logger
from leasing_esign.integrations.esignature.base import EnvelopeResponse, SignaturePosition, SigningUrlInfo
from leasing_esign.integrations.esignature.docusign_adapter import DocuSignClient
from leasing_esign.integrations.storage.s3 import ObjectStorageService
from leasing_esign.models.lease import Lease
from leasing_esign.repositories.lease_repository import LeaseRepository
from leasing_esign.services.document_store import SignedDocumentStore

logger = get_logger(__name__)


class LeaseDocumentLoader:
    """Loads a lease PDF from the reference stored on the lease.

    Supported references: ``s3://bucket/key`` URIs, http(s) URLs (including
    presigned ones) and bare object keys.
    """

    def __init__(self, object_storage: ObjectStorageService, timeout_seconds: int = 30):
        self.object_storage = object_storage
        self._timeout = ClientTimeout(total=timeout_seconds, connect=10)
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    @staticmethod
    def object_key(reference: str) -> str:
        if reference.startswith("s3://"):
            _, _, remainder = reference[len("s3://"):].partition("/")
            return remainder
        return reference

    async def load(self, reference: str) -> bytes:
        if reference.startswith(("http://", "https://")):
            try:
                async with self.session.get(reference) as response:
                    if response.status != 200:
                        raise TransientIOError(
                            f"Lease document download returned HTTP {response.status}",
                            error_code="document_download_failed",
                            provider="http",
                        )
                    return await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransientIOError(
                    f"Lease document download failed: {str(e) or type(e).__name__}",
                    error_code="document_download_failed",
                    provider="http",
                ) from e

        return await self.object_storage.get_bytes(self.object_key(reference))

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class SignatureService:
    def __init__(
        self,
        lease_repository: LeaseRepository,
        client: DocuSignClient,
        document_loader: LeaseDocumentLoader,
        document_store: SignedDocumentStore,
        signed_url_ttl_seconds: int = 900,
        default_return_url: str | None = None,
    ):
        self.leases = lease_repository
        self.client = client
        self.document_loader = document_loader
        self.document_store = document_store
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.default_return_url = default_return_url

    async def _get_lease(self, lease_id: str) -> Lease:
        lease = await self.leases.find_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found with ID {lease_id}", error_code="lease_not_found", context={"lease_id": lease_id})
        return lease

    async def _load_document(self, lease: Lease) -> bytes:
        """
        Best-effort PDF load. An unavailable document yields empty bytes, which
        the client rejects with an error naming the lease.
        """
        if not lease.pdf_document_ref:
            logger.warning("lease.document.missing_reference", lease_id=lease.id)
            return b""
        try:
            content = await self.document_loader.load(lease.pdf_document_ref)
        except (TransientIOError, NotFoundError) as e:
            logger.warning("lease.document.load_failed", lease_id=lease.id, error=e.error_message)
            return b""
        logger.info("lease.document.loaded", lease_id=lease.id, size_bytes=len(content))
        return content

    async def _require_document(self, lease: Lease) -> bytes:
        """Strict PDF load for embedded signing: a missing or unreadable document is a NotFoundError."""
        content = await self._load_document(lease)
        if not content:
            raise NotFoundError(
                "Lease PDF document not found or inaccessible",
                error_code="lease_document_not_found",
                context={"lease_id": lease.id},
            )
        return content

    async def send_lease_for_signature(
        self,
        lease_id: str,
        recipient_email: str | None = None,
        signature_position: SignaturePosition | None = None,
    ) -> EnvelopeResponse:
        lease = await self._get_lease(lease_id)
        email = recipient_email or lease.tenant_email or ""
        name = (lease.tenant_name or "").strip() or email

        document = await self._load_document(lease)
        envelope = await self.client.send(lease_id, document, email, name, signature_position)

        updated = await self.leases.update_envelope_id(lease_id, envelope.envelope_id)
        if updated is None:
            logger.warning("lease.envelope.record_failed", lease_id=lease_id, envelope_id=envelope.envelope_id)

        logger.info("lease.sent_for_signature", lease_id=lease_id, envelope_id=envelope.envelope_id)
        return envelope

    async def generate_signing_url(
        self,
        lease_id: str,
        recipient_email: str,
        recipient_name: str,
        return_url: str | None = None,
    ) -> SigningUrlInfo:
        lease = await self._get_lease(lease_id)
        document = await self._require_document(lease)

        envelope = await self.client.create_embedded_envelope(lease_id, document, recipient_email, recipient_name)
        await self.leases.update_envelope_id(lease_id, envelope.envelope_id)

        signing = await self.client.get_recipient_view_url(
            envelope.envelope_id,
            recipient_email,
            recipient_name,
            return_url or self.default_return_url or "",
        )
        logger.info("lease.signing_url.generated", lease_id=lease_id, envelope_id=envelope.envelope_id)
        return signing

    async def _get_signed_reference(self, lease_id: str) -> str:
        lease = await self._get_lease(lease_id)
        if not lease.signed_document_ref:
            raise NotFoundError(
                f"Signed document not available for lease {lease_id}",
                error_code="signed_document_not_found",
                context={"lease_id": lease_id},
            )
        return lease.signed_document_ref

    async def get_signed_document_url(self, lease_id: str) -> str:
        reference = await self._get_signed_reference(lease_id)
        return await self.document_store.download_url(reference, lease_id, self.signed_url_ttl_seconds)

    async def get_signed_document_content(self, lease_id: str) -> bytes:
        reference = await self._get_signed_reference(lease_id)
        return await self.document_store.load(reference)
