"""
Envelope construction for lease signature requests.
"""

from typing import Optional

from leasing_esign.core.config import Settings

from .base import (
    DEFAULT_SIGNATURE_POSITION,
    DOCUMENT_ID,
    EnvelopeDefinition,
    EnvelopeDocument,
    EnvelopeNotification,
    EnvelopeSigner,
    EnvelopeStatus,
    SignaturePosition,
    SignHereTab,
)


class EnvelopeBuilder:
    """Builds one-document, one-signer envelope definitions for a lease."""

    def __init__(self, enable_expiration: bool = False, expiration_days: int = 30):
        self.enable_expiration = enable_expiration
        self.expiration_days = expiration_days

    @classmethod
    def from_settings(cls, settings: Settings) -> "EnvelopeBuilder":
        return cls(
            enable_expiration=settings.docusign_enable_expiration,
            expiration_days=settings.docusign_expiration_days,
        )

    def build_envelope(
        self,
        lease_id: str,
        document_base64: str,
        recipient_email: str,
        recipient_name: str,
        signature_position: Optional[SignaturePosition] = None,
    ) -> EnvelopeDefinition:
        """Envelope emailed to the tenant and sent immediately."""
        return self._build(
            lease_id,
            document_base64,
            recipient_email,
            recipient_name,
            signature_position,
            status=EnvelopeStatus.SENT,
            client_user_id=None,
        )

    def build_embedded_envelope(
        self,
        lease_id: str,
        document_base64: str,
        recipient_email: str,
        recipient_name: str,
        signature_position: Optional[SignaturePosition] = None,
    ) -> EnvelopeDefinition:
        """
        Draft envelope for in-app signing.

        The recipient email doubles as clientUserId; the recipient view request
        must present the same value or DocuSign rejects it.
        """
        return self._build(
            lease_id,
            document_base64,
            recipient_email,
            recipient_name,
            signature_position,
            status=EnvelopeStatus.CREATED,
            client_user_id=recipient_email,
        )

    def _build(
        self,
        lease_id: str,
        document_base64: str,
        recipient_email: str,
        recipient_name: str,
        signature_position: Optional[SignaturePosition],
        status: EnvelopeStatus,
        client_user_id: Optional[str],
    ) -> EnvelopeDefinition:
        position = signature_position or DEFAULT_SIGNATURE_POSITION

        return EnvelopeDefinition(
            email_subject=f"Please sign your lease agreement - {lease_id}",
            document=EnvelopeDocument(
                document_base64=document_base64,
                name=f"Lease_{lease_id}.pdf",
                file_extension="pdf",
                document_id=DOCUMENT_ID,
            ),
            signer=EnvelopeSigner(
                email=recipient_email,
                name=recipient_name,
                client_user_id=client_user_id,
                sign_here_tabs=(
                    SignHereTab(
                        document_id=DOCUMENT_ID,
                        page_number=position.page_number,
                        x_position=position.x_position,
                        y_position=position.y_position,
                    ),
                ),
            ),
            status=status.value,
            notification=self._notification(),
        )

    def _notification(self) -> Optional[EnvelopeNotification]:
        if not self.enable_expiration:
            return None
        return EnvelopeNotification(expire_after_days=self.expiration_days)
