"""
E-signature value types

Request/response structures exchanged with DocuSign. Envelope definitions are
immutable and built fresh for every send; `to_payload()` renders the provider's
JSON shape.

DocuSign expects positional tab fields, routing orders, recipient ids and
notification day counts as JSON strings, not numbers. Every `to_payload()`
below emits them as strings and that must not change.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


DOCUMENT_ID = "1"
RECIPIENT_ID = "1"
ROUTING_ORDER = "1"


class EnvelopeStatus(str, Enum):
    """Envelope status values reported by DocuSign."""
    CREATED = "created"
    SENT = "sent"
    DELIVERED = "delivered"
    SIGNED = "signed"
    COMPLETED = "completed"
    DECLINED = "declined"
    VOIDED = "voided"
    DELETED = "deleted"
    TIMED_OUT = "timedout"


ACTIONABLE_STATUSES = frozenset({EnvelopeStatus.COMPLETED, EnvelopeStatus.DECLINED, EnvelopeStatus.VOIDED})


@dataclass(frozen=True)
class CachedToken:
    """Access token and its absolute expiry in epoch milliseconds."""
    access_token: str
    expires_at_ms: int


@dataclass(frozen=True)
class SignaturePosition:
    page_number: int = 1
    x_position: int = 100
    y_position: int = 200


DEFAULT_SIGNATURE_POSITION = SignaturePosition()


@dataclass(frozen=True)
class SignHereTab:
    document_id: str
    page_number: int
    x_position: int
    y_position: int

    def to_payload(self) -> Dict[str, str]:
        return {
            "documentId": self.document_id,
            "pageNumber": str(self.page_number),
            "xPosition": str(self.x_position),
            "yPosition": str(self.y_position),
        }


@dataclass(frozen=True)
class EnvelopeDocument:
    document_base64: str
    name: str
    file_extension: str = "pdf"
    document_id: str = DOCUMENT_ID

    def to_payload(self) -> Dict[str, str]:
        return {
            "documentBase64": self.document_base64,
            "name": self.name,
            "fileExtension": self.file_extension,
            "documentId": self.document_id,
        }


@dataclass(frozen=True)
class EnvelopeSigner:
    email: str
    name: str
    sign_here_tabs: Tuple[SignHereTab, ...]
    recipient_id: str = RECIPIENT_ID
    routing_order: str = ROUTING_ORDER
    client_user_id: Optional[str] = None  # Set only for embedded signing

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "email": self.email,
            "name": self.name,
            "recipientId": self.recipient_id,
            "routingOrder": self.routing_order,
            "tabs": {"signHereTabs": [tab.to_payload() for tab in self.sign_here_tabs]},
        }
        if self.client_user_id is not None:
            payload["clientUserId"] = self.client_user_id
        return payload


@dataclass(frozen=True)
class EnvelopeNotification:
    """Reminder and expiration policy attached to an envelope."""
    reminder_delay_days: int = 2
    reminder_frequency_days: int = 3
    expire_after_days: int = 30
    expire_warn_days: int = 3

    def to_payload(self) -> Dict[str, Any]:
        return {
            "useAccountDefaults": "false",
            "reminders": {
                "reminderEnabled": "true",
                "reminderDelay": str(self.reminder_delay_days),
                "reminderFrequency": str(self.reminder_frequency_days),
            },
            "expirations": {
                "expireEnabled": "true",
                "expireAfter": str(self.expire_after_days),
                "expireWarn": str(self.expire_warn_days),
            },
        }


@dataclass(frozen=True)
class EnvelopeDefinition:
    email_subject: str
    document: EnvelopeDocument
    signer: EnvelopeSigner
    status: str = EnvelopeStatus.SENT.value
    notification: Optional[EnvelopeNotification] = None

    @property
    def is_embedded(self) -> bool:
        return self.signer.client_user_id is not None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "emailSubject": self.email_subject,
            "documents": [self.document.to_payload()],
            "recipients": {"signers": [self.signer.to_payload()]},
            "status": self.status,
        }
        if self.notification is not None:
            payload["notification"] = self.notification.to_payload()
        return payload


@dataclass(frozen=True)
class EnvelopeResponse:
    envelope_id: str
    status: str
    status_date_time: Optional[str] = None
    uri: Optional[str] = None

    @classmethod
    def from_provider(cls, data: Dict[str, Any]) -> "EnvelopeResponse":
        return cls(
            envelope_id=data["envelopeId"],
            status=data.get("status", EnvelopeStatus.CREATED.value),
            status_date_time=data.get("statusDateTime"),
            uri=data.get("uri"),
        )


@dataclass
class SigningUrlInfo:
    """Information for embedded signing."""
    url: str
    envelope_id: str
    expires_at: datetime
    recipient_email: Optional[str] = None
