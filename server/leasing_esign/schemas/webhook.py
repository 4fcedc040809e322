from typing import Any

from pydantic import Field

from leasing_esign.schemas.common import CamelModel


class EnvelopeSummary(CamelModel):
    status: str
    email_subject: str | None = None
    envelope_id: str | None = None
    recipients: Any = None


class WebhookData(CamelModel):
    account_id: str | None = None
    user_id: str | None = None
    envelope_id: str
    envelope_summary: EnvelopeSummary


class WebhookPayload(CamelModel):
    """DocuSign Connect JSON (SIM) event.

    ``generated_date_time`` stays a string: Connect emits seven fractional
    digits, which stricter datetime parsers reject.
    """

    event: str = ""
    api_version: str | None = None
    uri: str | None = None
    retry_count: int = Field(default=0, ge=0)
    generated_date_time: str | None = None
    data: WebhookData

    @property
    def envelope_id(self) -> str:
        return self.data.envelope_id

    @property
    def status(self) -> str:
        return self.data.envelope_summary.status.lower()
