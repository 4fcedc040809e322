"""
DocuSign JWT bearer grant

AssertionSigner builds the RS256-signed assertion; TokenAcquirer exchanges it
for an access token and keeps the most recent token in a single replaceable
cell shared by every caller in the process.
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout
from jose import jwt
from jose.exceptions import JOSEError

from leasing_esign.core.config import Settings
from leasing_esign.core.exceptions import AuthenticationError
from leasing_esign.core.logging import get_logger

from .base import CachedToken

logger = get_logger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_SCOPE = "signature impersonation"
ASSERTION_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_BUFFER_MS = 5 * 60 * 1000

DEMO_OAUTH_HOST = "account-d.docusign.com"
PRODUCTION_OAUTH_HOST = "account.docusign.com"


def oauth_host_for(base_path: str) -> str:
    """Demo API hosts authenticate against the sandbox authority."""
    return DEMO_OAUTH_HOST if "demo" in base_path else PRODUCTION_OAUTH_HOST


class AssertionSigner:
    """Builds signed JWT assertions for the DocuSign OAuth token endpoint."""

    def __init__(
        self,
        integration_key: str,
        user_id: str,
        private_key: str,
        base_path: str,
        clock: Callable[[], float] = time.time,
    ):
        self.integration_key = integration_key
        self.user_id = user_id
        self.private_key = private_key
        self.base_path = base_path
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssertionSigner":
        settings.require_docusign()
        return cls(
            integration_key=settings.docusign_integration_key,
            user_id=settings.docusign_user_id,
            private_key=settings.docusign_private_key_pem,
            base_path=settings.docusign_base_path,
        )

    @property
    def oauth_host(self) -> str:
        return oauth_host_for(self.base_path)

    def claims(self, now: Optional[int] = None) -> Dict[str, Any]:
        issued_at = int(self._clock()) if now is None else now
        return {
            "iss": self.integration_key,
            "sub": self.user_id,
            "aud": self.oauth_host,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
            "scope": ASSERTION_SCOPE,
        }

    def build_assertion(self, now: Optional[int] = None) -> str:
        """
        Sign a fresh assertion.

        Raises:
            AuthenticationError: If the private key cannot be used for RS256 signing
        """
        try:
            return jwt.encode(
                self.claims(now),
                self.private_key,
                algorithm="RS256",
                headers={"typ": "JWT"},
            )
        except (JOSEError, ValueError, TypeError) as e:
            logger.error("docusign.assertion.signing_failed", error=str(e))
            raise AuthenticationError(
                message=f"DocuSign authentication failed: unable to sign assertion ({e})",
                error_code="assertion_signing_failed",
            ) from e


class TokenAcquirer:
    """
    Produces usable access tokens, reusing the cached one until it is within
    TOKEN_REFRESH_BUFFER_MS of expiry.

    The cache cell only ever holds an immutable CachedToken and is replaced
    wholesale, so concurrent refreshes at worst perform a redundant exchange.
    """

    def __init__(
        self,
        signer: AssertionSigner,
        timeout_seconds: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.signer = signer
        self._clock = clock
        self._cache: Optional[CachedToken] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = ClientTimeout(total=timeout_seconds, connect=10)

    @property
    def token_url(self) -> str:
        return f"https://{self.signer.oauth_host}/oauth/token"

    @property
    def cached_token(self) -> Optional[CachedToken]:
        return self._cache

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def invalidate(self) -> None:
        """Forget the cached token; the next call performs a fresh exchange."""
        self._cache = None

    async def get_access_token(self) -> str:
        now_ms = self._now_ms()
        cached = self._cache
        if cached is not None and cached.expires_at_ms - TOKEN_REFRESH_BUFFER_MS > now_ms:
            logger.debug("docusign.token.reused", expires_at_ms=cached.expires_at_ms)
            return cached.access_token

        logger.debug("docusign.token.refreshing")
        assertion = self.signer.build_assertion(now=now_ms // 1000)
        token_data = await self._exchange(assertion)

        self._cache = CachedToken(
            access_token=token_data["access_token"],
            expires_at_ms=now_ms + token_data["expires_in"] * 1000,
        )
        logger.info("docusign.token.obtained", expires_in=token_data["expires_in"])
        return token_data["access_token"]

    async def _exchange(self, assertion: str) -> Dict[str, Any]:
        form = {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            async with self.session.post(self.token_url, data=form, headers=headers) as response:
                if response.status != 200:
                    error_body = await self._read_error_body(response)
                    raise AuthenticationError(
                        message=f"DocuSign authentication failed: {self._describe(error_body, response.status)}",
                        error_code="token_exchange_rejected",
                        provider_response=error_body,
                        context={"status": response.status},
                    )

                token_data = await response.json()
                return self._validated_token(token_data)

        except AuthenticationError as e:
            logger.error(
                "docusign.token.exchange_failed",
                error=e.error_message,
                provider_response=e.provider_response,
            )
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError, ValueError) as e:
            logger.error("docusign.token.exchange_failed", error=str(e) or type(e).__name__)
            raise AuthenticationError(
                message=f"DocuSign authentication failed: {str(e) or type(e).__name__}",
                error_code="token_exchange_error",
            ) from e

    @staticmethod
    def _validated_token(token_data: Any) -> Dict[str, Any]:
        """Normalise a token response to a str access_token and int expires_in."""
        access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
        raw_expires_in = token_data.get("expires_in") if isinstance(token_data, dict) else None

        try:
            expires_in = int(raw_expires_in)
        except (TypeError, ValueError):
            expires_in = None

        if not isinstance(access_token, str) or not access_token or expires_in is None:
            raise AuthenticationError(
                message="DocuSign authentication failed: token response missing or invalid access_token or expires_in",
                error_code="token_response_malformed",
                provider_response=token_data,
            )
        return {"access_token": access_token, "expires_in": expires_in}

    @staticmethod
    async def _read_error_body(response: aiohttp.ClientResponse) -> Any:
        try:
            return await response.json()
        except (aiohttp.ContentTypeError, json.JSONDecodeError, ValueError):
            return await response.text()

    @staticmethod
    def _describe(error_body: Any, status: int) -> str:
        if isinstance(error_body, dict):
            return error_body.get("error") or error_body.get("error_description") or f"HTTP {status}"
        return error_body or f"HTTP {status}"

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
