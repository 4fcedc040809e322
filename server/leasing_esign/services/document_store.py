"""
Signed document retrieval and persistence

Completed envelopes are downloaded from DocuSign and written through a
pluggable storage strategy. Persisting is retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leasing_esign.core.config import Settings
from leasing_esign.core.exceptions import ConfigurationError, DocumentStorageError, NotFoundError
from leasing_esign.core.logging import get_logger
from leasing_esign.integrations.esignature.docusign_adapter import DocuSignClient
from leasing_esign.integrations.storage.s3 import ObjectStorageService
from leasing_esign.repositories.signed_document_repository import SignedDocumentRepository

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DATABASE_REF_PREFIX = "signed-document:"


def signed_document_file_name(envelope_id: str, now: datetime | None = None) -> str:
    """``{envelope_id}_{timestamp}.pdf`` with a filesystem-safe UTC timestamp."""
    moment = now or datetime.now(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return f"{envelope_id}_{stamp.replace(':', '-').replace('.', '-')}.pdf"


class StorageStrategy(ABC):
    name: str

    @abstractmethod
    async def save(self, lease_id: str, envelope_id: str, content: bytes) -> str:
        """Persist ``content`` and return a reference to it."""

    @abstractmethod
    async def load(self, reference: str) -> bytes:
        """Read back bytes stored under ``reference``."""

    @abstractmethod
    async def download_url(self, reference: str, lease_id: str, ttl_seconds: int) -> str:
        """A URL a client can fetch the stored document from."""


class S3StorageStrategy(StorageStrategy):
    name = "s3"

    def __init__(self, object_storage: ObjectStorageService):
        self.object_storage = object_storage

    async def save(self, lease_id: str, envelope_id: str, content: bytes) -> str:
        result = await self.object_storage.upload_file(
            content,
            PDF_CONTENT_TYPE,
            f"signed-leases/{lease_id}",
            signed_document_file_name(envelope_id),
        )
        return result["key"]

    async def load(self, reference: str) -> bytes:
        return await self.object_storage.get_bytes(reference)

    async def download_url(self, reference: str, lease_id: str, ttl_seconds: int) -> str:
        return await self.object_storage.generate_download_url(reference, ttl_seconds)


class DatabaseStorageStrategy(StorageStrategy):
    """Stores document bytes in the signed_documents table.

    Each save and load runs in its own session.
    """

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], content_path_template: str = "/leases/{lease_id}/signed-document/content"):
        self.session_factory = session_factory
        self.content_path_template = content_path_template

    async def save(self, lease_id: str, envelope_id: str, content: bytes) -> str:
        async with self.session_factory() as session:
            document = await SignedDocumentRepository(session).add(lease_id, envelope_id, content, PDF_CONTENT_TYPE)
            return f"{DATABASE_REF_PREFIX}{document.id}"

    async def load(self, reference: str) -> bytes:
        if not reference.startswith(DATABASE_REF_PREFIX):
            raise NotFoundError(f"Signed document reference {reference} is not a database reference", error_code="document_not_found")

        document_id = reference[len(DATABASE_REF_PREFIX):]
        async with self.session_factory() as session:
            document = await SignedDocumentRepository(session).get(document_id)
        if document is None:
            raise NotFoundError(f"Signed document {document_id} not found", error_code="document_not_found")
        return document.content

    async def download_url(self, reference: str, lease_id: str, ttl_seconds: int) -> str:
        return self.content_path_template.format(lease_id=lease_id)


def build_storage_strategy(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    object_storage: ObjectStorageService | None = None,
) -> StorageStrategy:
    if settings.storage_strategy == "s3":
        return S3StorageStrategy(object_storage or ObjectStorageService.from_settings(settings))
    return DatabaseStorageStrategy(session_factory)


class SignedDocumentStore:
    def __init__(
        self,
        client: DocuSignClient,
        strategy: StorageStrategy,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
    ):
        self.client = client
        self.strategy = strategy
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds

    async def retrieve(self, envelope_id: str) -> bytes:
        return await self.client.get_signed_document(envelope_id)

    async def store(self, lease_id: str, envelope_id: str, content: bytes) -> str:
        """
        Persist a signed document, retrying failed attempts.

        Waits base_delay_seconds * 2**(attempt - 1) between attempts (1s, 2s with
        the defaults) and never after the last one.

        Returns:
            Storage reference (S3 object key or ``signed-document:{id}``)

        Raises:
            DocumentStorageError: When every attempt failed
            ConfigurationError: Immediately, without retrying
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                reference = await self.strategy.save(lease_id, envelope_id, content)
                logger.info(
                    "document_store.stored",
                    lease_id=lease_id,
                    envelope_id=envelope_id,
                    strategy=self.strategy.name,
                    attempt=attempt,
                    reference=reference,
                )
                return reference
            except ConfigurationError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "document_store.attempt_failed",
                    lease_id=lease_id,
                    envelope_id=envelope_id,
                    strategy=self.strategy.name,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(exc),
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay_seconds * (2 ** (attempt - 1)))

        logger.error(
            "document_store.failed",
            lease_id=lease_id,
            envelope_id=envelope_id,
            attempts=self.max_attempts,
            error=str(last_error),
        )
        raise DocumentStorageError(
            f"Failed to store signed document for lease {lease_id} after {self.max_attempts} attempts: {last_error}",
            provider=self.strategy.name,
            context={"lease_id": lease_id, "envelope_id": envelope_id, "attempts": self.max_attempts},
        ) from last_error

    async def load(self, reference: str) -> bytes:
        return await self.strategy.load(reference)

    async def download_url(self, reference: str, lease_id: str, ttl_seconds: int = 900) -> str:
        return await self.strategy.download_url(reference, lease_id, ttl_seconds)
