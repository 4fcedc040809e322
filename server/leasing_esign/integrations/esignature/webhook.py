"""
DocuSign Connect HMAC verification

DocuSign signs the exact bytes it delivers with every active Connect HMAC key
and sends one base64 digest per key in X-DocuSign-Signature-1..N. A request is
authentic when any presented digest matches the digest of the raw body under
our configured secret.
"""

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence, Union

from leasing_esign.core.config import Settings
from leasing_esign.core.exceptions import VerificationError
from leasing_esign.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER_PREFIX = "x-docusign-signature-"


def compute_signature(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of ``body`` keyed with ``secret``."""
    digest = hmac.new(secret.encode('utf-8'), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode('ascii')


def constant_time_equals(candidate: str, expected: str) -> bool:
    candidate_bytes = candidate.encode('utf-8')
    expected_bytes = expected.encode('utf-8')

    if len(candidate_bytes) != len(expected_bytes):
        # Compare against a same-length dummy.
        hmac.compare_digest(candidate_bytes, bytes(len(candidate_bytes)))
        return False

    return hmac.compare_digest(candidate_bytes, expected_bytes)


def signature_headers(headers: Mapping[str, str]) -> List[str]:
    """Collect X-DocuSign-Signature-N values from a header mapping, ordered by N."""
    found = []
    for name, value in headers.items():
        lowered = name.lower()
        if not lowered.startswith(SIGNATURE_HEADER_PREFIX):
            continue
        suffix = lowered[len(SIGNATURE_HEADER_PREFIX):]
        if suffix.isdigit() and value:
            found.append((int(suffix), value))
    return [value for _, value in sorted(found)]


class WebhookVerifier:
    """Verifies inbound DocuSign Connect deliveries."""

    def __init__(self, secret: Optional[str]):
        self.secret = secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookVerifier":
        return cls(secret=settings.docusign_webhook_secret)

    def verify(
        self,
        raw_body: Optional[bytes],
        signature: Union[str, Sequence[str], None],
        source_ip: Optional[str] = None,
    ) -> bool:
        """
        Check a delivery's signature against its raw body.

        Args:
            raw_body: Exact request bytes as received, before any JSON parsing
            signature: One header value, or every X-DocuSign-Signature-N value present
            source_ip: Caller address, for the audit log only

        Returns:
            True when a presented signature matches

        Raises:
            VerificationError: With reason missing_signature, raw_body_unavailable,
                secret_not_configured or signature_mismatch
        """
        candidates = [signature] if isinstance(signature, str) else list(signature or [])
        candidates = [value for value in candidates if value]

        if not candidates:
            self._reject("missing_signature", "Missing HMAC signature header", source_ip)

        if raw_body is None:
            self._reject("raw_body_unavailable", "Raw body not available for signature validation", source_ip)

        if not self.secret:
            self._reject("secret_not_configured", "Webhook secret not configured", source_ip)

        expected = compute_signature(self.secret, raw_body)
        # Every candidate is compared, matched or not.
        matches = [constant_time_equals(candidate, expected) for candidate in candidates]

        if not any(matches):
            self._reject("signature_mismatch", "Invalid HMAC signature", source_ip)

        logger.info(
            "docusign.webhook.verified",
            source_ip=source_ip,
            timestamp=datetime.now(timezone.utc).isoformat(),
            signatures_presented=len(candidates),
        )
        return True

    @staticmethod
    def _reject(reason: str, message: str, source_ip: Optional[str]) -> None:
        logger.warning(
            "docusign.webhook.verification_failed",
            reason=reason,
            source_ip=source_ip,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        raise VerificationError(message, reason=reason, context={"source_ip": source_ip})
