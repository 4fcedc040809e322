"""
E-signature error taxonomy.

Every error raised by the signing subsystem derives from ESignatureError. The
HTTP boundary maps failures to responses by type and error_code alone.
"""

from typing import Any, Dict, Optional


class ESignatureError(Exception):
    """Base class for e-signature subsystem errors."""

    default_error_code = "esignature_error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        provider: Optional[str] = "docusign",
        provider_response: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_message = message
        self.error_code = error_code or self.default_error_code
        self.provider = provider
        self.provider_response = provider_response
        self.context = context or {}


class ConfigurationError(ESignatureError):
    """A required secret or credential is missing."""

    default_error_code = "configuration_error"


class AuthenticationError(ESignatureError):
    """Assertion signing or token exchange failed."""

    default_error_code = "authentication_failed"


class VerificationError(ESignatureError):
    """An inbound webhook failed authenticity checks."""

    default_error_code = "webhook_verification_failed"

    def __init__(self, message: str, reason: str, **kwargs):
        super().__init__(message, error_code=reason, **kwargs)
        self.reason = reason


class NotFoundError(ESignatureError):
    """A lease, envelope or stored document does not exist."""

    default_error_code = "not_found"


class TransientIOError(ESignatureError):
    """Storage or network failure that may succeed on retry."""

    default_error_code = "transient_io_error"


class DocumentStorageError(TransientIOError):
    """Signed document could not be persisted after all retry attempts."""

    default_error_code = "document_storage_failed"


class StateConsistencyError(ESignatureError):
    """Local lease state could not be brought in line with provider state."""

    default_error_code = "state_consistency_error"


class EnvelopeDispatchError(ESignatureError):
    """Envelope creation or recipient view request failed."""

    default_error_code = "envelope_dispatch_failed"


class DocumentRetrievalError(ESignatureError):
    """The completed document could not be downloaded from the provider."""

    default_error_code = "document_retrieval_failed"
