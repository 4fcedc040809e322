"""
DocuSign eSignature REST client

Sends lease envelopes, requests embedded signing views and downloads completed
documents. Every call authenticates with a token from the shared TokenAcquirer.
"""

import asyncio
import base64
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from leasing_esign.core.config import Settings
from leasing_esign.core.exceptions import (
    DocumentRetrievalError,
    ESignatureError,
    EnvelopeDispatchError,
)
from leasing_esign.core.logging import get_logger

from .auth import TokenAcquirer
from .base import (
    EnvelopeDefinition,
    EnvelopeResponse,
    EnvelopeStatus,
    SignaturePosition,
    SigningUrlInfo,
)
from .envelopes import EnvelopeBuilder

logger = get_logger(__name__)

RECIPIENT_VIEW_TTL = timedelta(minutes=5)


class DocuSignClient:
    """DocuSign envelope dispatcher and document retriever."""

    def __init__(
        self,
        base_path: str,
        account_id: str,
        token_acquirer: TokenAcquirer,
        builder: Optional[EnvelopeBuilder] = None,
        timeout_seconds: int = 30,
    ):
        """
        Initialize DocuSign client.

        Args:
            base_path: REST base path, e.g. https://demo.docusign.net/restapi
            account_id: DocuSign account ID
            token_acquirer: Shared access token source
            builder: Envelope builder (defaults to no expiration policy)
            timeout_seconds: Total per-request timeout
        """
        self.base_path = base_path.rstrip('/')
        self.account_id = account_id
        self.token_acquirer = token_acquirer
        self.builder = builder or EnvelopeBuilder()

        self.envelopes_endpoint = f"{self.base_path}/v2.1/accounts/{self.account_id}/envelopes"

        # Created on first use, inside the running event loop
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = ClientTimeout(total=timeout_seconds, connect=10)

    @classmethod
    def from_settings(cls, settings: Settings, token_acquirer: TokenAcquirer) -> "DocuSignClient":
        return cls(
            base_path=settings.docusign_base_path,
            account_id=settings.docusign_account_id,
            token_acquirer=token_acquirer,
            builder=EnvelopeBuilder.from_settings(settings),
            timeout_seconds=settings.docusign_timeout_seconds,
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._session

    async def _auth_headers(self) -> Dict[str, str]:
        access_token = await self.token_acquirer.get_access_token()
        return {"Authorization": f"Bearer {access_token}"}

    async def send(
        self,
        lease_id: str,
        document_bytes: bytes,
        recipient_email: str,
        recipient_name: str,
        signature_position: Optional[SignaturePosition] = None,
    ) -> EnvelopeResponse:
        """
        Create and send an emailed signature envelope for a lease.

        Raises:
            EnvelopeDispatchError: On invalid input or any provider failure; the
                message always names the lease and the underlying cause
        """
        self._validate_send_inputs(lease_id, document_bytes, recipient_email)
        logger.info("docusign.envelope.sending", lease_id=lease_id, recipient_email=recipient_email)

        envelope = self.builder.build_envelope(
            lease_id,
            base64.b64encode(document_bytes).decode('utf-8'),
            recipient_email,
            recipient_name,
            signature_position,
        )
        response = await self._create_envelope(lease_id, envelope)

        logger.info("docusign.envelope.created", lease_id=lease_id, envelope_id=response.envelope_id, status=response.status)
        return response

    async def create_embedded_envelope(
        self,
        lease_id: str,
        document_bytes: bytes,
        recipient_email: str,
        recipient_name: str,
        signature_position: Optional[SignaturePosition] = None,
    ) -> EnvelopeResponse:
        """
        Create an envelope for in-app signing.

        The envelope is created as a draft carrying clientUserId and then
        released; a recipient view can only be requested for a sent envelope.
        Embedded recipients receive no email from DocuSign.
        """
        self._validate_send_inputs(lease_id, document_bytes, recipient_email)
        logger.info("docusign.envelope.embedded_creating", lease_id=lease_id, recipient_email=recipient_email)

        envelope = self.builder.build_embedded_envelope(
            lease_id,
            base64.b64encode(document_bytes).decode('utf-8'),
            recipient_email,
            recipient_name,
            signature_position,
        )
        draft = await self._create_envelope(lease_id, envelope)

        try:
            endpoint = f"{self.envelopes_endpoint}/{draft.envelope_id}"
            headers = await self._auth_headers()
            async with self.session.put(endpoint, json={"status": EnvelopeStatus.SENT.value}, headers=headers) as response:
                await self._raise_for_status(response, "release_envelope")
        except (ESignatureError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._dispatch_error(lease_id, e, envelope_id=draft.envelope_id) from e

        logger.info("docusign.envelope.embedded_created", lease_id=lease_id, envelope_id=draft.envelope_id)
        return replace(draft, status=EnvelopeStatus.SENT.value)

    async def get_recipient_view_url(
        self,
        envelope_id: str,
        recipient_email: str,
        recipient_name: str,
        return_url: str,
    ) -> SigningUrlInfo:
        """
        Request a short-lived embedded signing URL.

        clientUserId must equal the value used when the envelope was created,
        which for lease envelopes is the recipient email.
        """
        payload = {
            "returnUrl": return_url,
            "authenticationMethod": "none",
            "email": recipient_email,
            "userName": recipient_name,
            "clientUserId": recipient_email,
        }

        try:
            endpoint = f"{self.envelopes_endpoint}/{envelope_id}/views/recipient"
            headers = await self._auth_headers()
            async with self.session.post(endpoint, json=payload, headers=headers) as response:
                await self._raise_for_status(response, "get_recipient_view")
                response_data = await response.json()
                if not isinstance(response_data, dict):
                    raise TypeError(f"expected a JSON object, got {type(response_data).__name__}")

        except ESignatureError as e:
            logger.error(
                "docusign.recipient_view.failed",
                envelope_id=envelope_id,
                error=e.error_message,
                provider_response=e.provider_response,
            )
            raise EnvelopeDispatchError(
                message=f"Failed to generate signing URL for envelope {envelope_id}: {e.error_message}",
                error_code=e.error_code,
                provider_response=e.provider_response,
                context={"envelope_id": envelope_id},
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("docusign.recipient_view.failed", envelope_id=envelope_id, error=str(e))
            raise EnvelopeDispatchError(
                message=f"Failed to generate signing URL for envelope {envelope_id}: {str(e) or type(e).__name__}",
                error_code="api_error",
                context={"envelope_id": envelope_id},
            ) from e
        except (ValueError, TypeError) as e:
            logger.error("docusign.recipient_view.failed", envelope_id=envelope_id, error=str(e))
            raise EnvelopeDispatchError(
                message=f"Failed to generate signing URL for envelope {envelope_id}: malformed provider response ({e})",
                error_code="malformed_response",
                context={"envelope_id": envelope_id},
            ) from e

        url = response_data.get("url")
        if not url:
            raise EnvelopeDispatchError(
                message=f"Failed to generate signing URL for envelope {envelope_id}: no URL returned",
                error_code="no_url_returned",
                provider_response=response_data,
                context={"envelope_id": envelope_id},
            )

        return SigningUrlInfo(
            url=url,
            envelope_id=envelope_id,
            expires_at=datetime.now(timezone.utc) + RECIPIENT_VIEW_TTL,
            recipient_email=recipient_email,
        )

    async def get_signed_document(self, envelope_id: str) -> bytes:
        """
        Download the combined, fully executed PDF for an envelope.

        Raises:
            DocumentRetrievalError: If the download fails
        """
        logger.info("docusign.document.retrieving", envelope_id=envelope_id)
        try:
            endpoint = f"{self.envelopes_endpoint}/{envelope_id}/documents/combined"
            headers = await self._auth_headers()
            headers["Accept"] = "application/pdf"
            async with self.session.get(endpoint, headers=headers) as response:
                await self._raise_for_status(response, "get_signed_document")
                content = await response.read()

        except ESignatureError as e:
            logger.error(
                "docusign.document.retrieval_failed",
                envelope_id=envelope_id,
                error=e.error_message,
                provider_response=e.provider_response,
            )
            raise DocumentRetrievalError(
                message=f"Failed to retrieve signed document for envelope {envelope_id}: {e.error_message}",
                error_code=e.error_code,
                provider_response=e.provider_response,
                context={"envelope_id": envelope_id},
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("docusign.document.retrieval_failed", envelope_id=envelope_id, error=str(e))
            raise DocumentRetrievalError(
                message=f"Failed to retrieve signed document for envelope {envelope_id}: {str(e) or type(e).__name__}",
                error_code="api_error",
                context={"envelope_id": envelope_id},
            ) from e

        logger.info("docusign.document.retrieved", envelope_id=envelope_id, size_bytes=len(content))
        return content

    async def _create_envelope(self, lease_id: str, envelope: EnvelopeDefinition) -> EnvelopeResponse:
        try:
            headers = await self._auth_headers()
            async with self.session.post(self.envelopes_endpoint, json=envelope.to_payload(), headers=headers) as response:
                await self._raise_for_status(response, "create_envelope")
                response_data = await response.json()
                if not isinstance(response_data, dict):
                    raise TypeError(f"expected a JSON object, got {type(response_data).__name__}")
                return EnvelopeResponse.from_provider(response_data)

        except (ESignatureError, aiohttp.ClientError, asyncio.TimeoutError, KeyError, ValueError, TypeError) as e:
            raise self._dispatch_error(lease_id, e) from e

    def _dispatch_error(self, lease_id: str, cause: Exception, envelope_id: Optional[str] = None) -> EnvelopeDispatchError:
        if isinstance(cause, ESignatureError):
            detail = cause.error_message
            error_code = cause.error_code
            provider_response = cause.provider_response
        elif isinstance(cause, KeyError):
            detail = f"provider response missing {cause}"
            error_code = "malformed_response"
            provider_response = None
        elif isinstance(cause, (ValueError, TypeError)):
            detail = f"malformed provider response ({cause})"
            error_code = "malformed_response"
            provider_response = None
        else:
            detail = str(cause) or type(cause).__name__
            error_code = "api_error"
            provider_response = None

        logger.error(
            "docusign.envelope.create_failed",
            lease_id=lease_id,
            envelope_id=envelope_id,
            error=detail,
            provider_response=provider_response,
        )
        return EnvelopeDispatchError(
            message=f"Failed to send lease {lease_id} for signature: {detail}",
            error_code=error_code,
            provider_response=provider_response,
            context={"lease_id": lease_id, "envelope_id": envelope_id},
        )

    @staticmethod
    def _validate_send_inputs(lease_id: str, document_bytes: bytes, recipient_email: str) -> None:
        if not document_bytes:
            logger.error("docusign.envelope.invalid_document", lease_id=lease_id)
            raise EnvelopeDispatchError(
                message=f"Lease PDF is required to send lease {lease_id} for signature",
                error_code="invalid_request",
                context={"lease_id": lease_id},
            )
        if not recipient_email or not recipient_email.strip():
            logger.error("docusign.envelope.missing_recipient", lease_id=lease_id)
            raise EnvelopeDispatchError(
                message=f"Recipient email is required to send lease {lease_id} for signature",
                error_code="invalid_request",
                context={"lease_id": lease_id},
            )

    async def _raise_for_status(self, response: aiohttp.ClientResponse, operation: str) -> None:
        """Map non-success DocuSign responses onto ESignatureError."""
        if response.status in (200, 201, 204):
            return

        error_message = f"DocuSign API error in {operation}"
        error_code = "api_error"
        error_body: Any = None

        try:
            error_body = await response.json()
            if isinstance(error_body, dict):
                error_message = error_body.get("message", error_message)
                error_code = error_body.get("errorCode", error_code)
        except (aiohttp.ContentTypeError, json.JSONDecodeError, ValueError):
            error_body = await response.text()
            error_message = error_body or error_message

        if response.status == 401:
            # Token was revoked or expired early; force a fresh exchange next time.
            self.token_acquirer.invalidate()
            error_code = "AUTH_ERROR"
        elif response.status == 429:
            retry_after = response.headers.get('Retry-After', '60')
            error_message = f"Rate limit exceeded, retry after {retry_after}s"
            error_code = "RATE_LIMIT"
        elif response.status >= 500 and error_code == "api_error":
            error_code = "SERVER_ERROR"

        raise ESignatureError(
            message=error_message,
            error_code=error_code,
            provider_response=error_body,
            context={"status": response.status, "operation": operation},
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
