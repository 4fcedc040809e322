"""
E-signature integration modules

DocuSign authentication, envelope construction and dispatch, and Connect
webhook verification.
"""

from .auth import AssertionSigner, TokenAcquirer
from .base import (
    ACTIONABLE_STATUSES,
    CachedToken,
    EnvelopeDefinition,
    EnvelopeResponse,
    EnvelopeStatus,
    SignaturePosition,
    SigningUrlInfo,
)
from .docusign_adapter import DocuSignClient
from .envelopes import EnvelopeBuilder
from .webhook import WebhookVerifier, compute_signature, signature_headers

__all__ = [
    "ACTIONABLE_STATUSES",
    "AssertionSigner",
    "CachedToken",
    "DocuSignClient",
    "EnvelopeBuilder",
    "EnvelopeDefinition",
    "EnvelopeResponse",
    "EnvelopeStatus",
    "SignaturePosition",
    "SigningUrlInfo",
    "TokenAcquirer",
    "WebhookVerifier",
    "compute_signature",
    "signature_headers",
]
