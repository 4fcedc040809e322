"""
Process-wide e-signature collaborators.

The token acquirer, DocuSign client and storage objects are created once per
process and shared by every request; repositories are bound per request to the
request's database session.
"""

from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leasing_esign.api.dependencies.database import get_db
from leasing_esign.core.config import get_settings
from leasing_esign.core.logging import get_logger
from leasing_esign.db.session import get_session_factory
from leasing_esign.integrations.esignature.auth import AssertionSigner, TokenAcquirer
from leasing_esign.integrations.esignature.docusign_adapter import DocuSignClient
from leasing_esign.integrations.esignature.webhook import WebhookVerifier
from leasing_esign.integrations.storage.s3 import ObjectStorageService
from leasing_esign.repositories.lease_repository import LeaseRepository
from leasing_esign.repositories.signature_history_repository import SignatureHistoryRepository
from leasing_esign.services.document_store import SignedDocumentStore, build_storage_strategy
from leasing_esign.services.signature_service import LeaseDocumentLoader, SignatureService
from leasing_esign.services.webhook_processor import WebhookEventProcessor

logger = get_logger(__name__)

WebhookProcessorFactory = Callable[[AsyncSession], WebhookEventProcessor]


@lru_cache(maxsize=None)
def get_token_acquirer() -> TokenAcquirer:
    settings = get_settings()
    return TokenAcquirer(
        AssertionSigner.from_settings(settings),
        timeout_seconds=settings.docusign_timeout_seconds,
    )


@lru_cache(maxsize=None)
def get_docusign_client() -> DocuSignClient:
    return DocuSignClient.from_settings(get_settings(), get_token_acquirer())


@lru_cache(maxsize=None)
def get_object_storage() -> ObjectStorageService:
    return ObjectStorageService.from_settings(get_settings())


@lru_cache(maxsize=None)
def get_document_store() -> SignedDocumentStore:
    settings = get_settings()
    strategy = build_storage_strategy(settings, get_session_factory(), get_object_storage())
    return SignedDocumentStore(
        get_docusign_client(),
        strategy,
        max_attempts=settings.storage_retry_attempts,
        base_delay_seconds=settings.storage_retry_base_delay_seconds,
    )


@lru_cache(maxsize=None)
def get_document_loader() -> LeaseDocumentLoader:
    settings = get_settings()
    return LeaseDocumentLoader(get_object_storage(), timeout_seconds=settings.docusign_timeout_seconds)


def get_webhook_verifier() -> WebhookVerifier:
    return WebhookVerifier.from_settings(get_settings())


def get_webhook_processor_factory() -> WebhookProcessorFactory:
    """Processors are built by the webhook handler after verification; building one may raise ConfigurationError."""

    def build(session: AsyncSession) -> WebhookEventProcessor:
        return WebhookEventProcessor(
            LeaseRepository(session),
            SignatureHistoryRepository(session),
            get_document_store(),
        )

    return build


def get_signature_service(
    session: AsyncSession = Depends(get_db),
    client: DocuSignClient = Depends(get_docusign_client),
    loader: LeaseDocumentLoader = Depends(get_document_loader),
    store: SignedDocumentStore = Depends(get_document_store),
) -> SignatureService:
    settings = get_settings()
    return SignatureService(
        LeaseRepository(session),
        client,
        loader,
        store,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        default_return_url=settings.default_signing_return_url,
    )


async def close_esignature_clients() -> None:
    """Close HTTP sessions of any collaborators created during the process lifetime."""
    if get_docusign_client.cache_info().currsize:
        await get_docusign_client().close()
    if get_token_acquirer.cache_info().currsize:
        await get_token_acquirer().close()
    if get_document_loader.cache_info().currsize:
        await get_document_loader().close()
    logger.info("esignature.clients.closed")


def clear_esignature_cache() -> None:
    get_token_acquirer.cache_clear()
    get_docusign_client.cache_clear()
    get_object_storage.cache_clear()
    get_document_store.cache_clear()
    get_document_loader.cache_clear()
