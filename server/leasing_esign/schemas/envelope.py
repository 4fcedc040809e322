from datetime import datetime

from pydantic import EmailStr, Field

from leasing_esign.integrations.esignature.base import EnvelopeResponse, SignaturePosition
from leasing_esign.schemas.common import CamelModel


class SignaturePositionIn(CamelModel):
    page_number: int = Field(default=1, ge=1)
    x_position: int = Field(default=100, ge=0)
    y_position: int = Field(default=200, ge=0)

    def to_position(self) -> SignaturePosition:
        return SignaturePosition(
            page_number=self.page_number,
            x_position=self.x_position,
            y_position=self.y_position,
        )


class SendForSignatureRequest(CamelModel):
    recipient_email: EmailStr | None = None
    signature_position: SignaturePositionIn | None = None


class EnvelopeResponseOut(CamelModel):
    envelope_id: str
    status: str
    status_date_time: str | None = None
    uri: str | None = None

    @classmethod
    def from_envelope(cls, envelope: EnvelopeResponse) -> "EnvelopeResponseOut":
        return cls(
            envelope_id=envelope.envelope_id,
            status=envelope.status,
            status_date_time=envelope.status_date_time,
            uri=envelope.uri,
        )


class GenerateSigningUrlRequest(CamelModel):
    recipient_email: EmailStr
    recipient_name: str = Field(min_length=1, max_length=255)
    return_url: str | None = Field(default=None, max_length=2048)


class SigningUrlResponse(CamelModel):
    signing_url: str
    envelope_id: str
    expires_at: datetime


class SignedDocumentUrlResponse(CamelModel):
    download_url: str
