"""
Lease signature state machine driven by DocuSign Connect events.

    DRAFT -> PENDING_SIGNATURE -> SIGNED | VOIDED
    PENDING_SIGNATURE -> DRAFT (declined, lease can be re-sent)

SIGNED and VOIDED are terminal for this event set.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from leasing_esign.core.exceptions import StateConsistencyError
from leasing_esign.core.logging import get_logger
from leasing_esign.integrations.esignature.base import ACTIONABLE_STATUSES, EnvelopeStatus
from leasing_esign.models.lease import SignatureStatus
from leasing_esign.repositories.lease_repository import LeaseRepository
from leasing_esign.repositories.signature_history_repository import SignatureHistoryRepository
from leasing_esign.schemas.webhook import WebhookPayload
from leasing_esign.services.document_store import SignedDocumentStore

logger = get_logger(__name__)

TERMINAL_STATES = frozenset({SignatureStatus.SIGNED, SignatureStatus.VOIDED})

ENVELOPE_TARGETS: dict[EnvelopeStatus, SignatureStatus] = {
    EnvelopeStatus.COMPLETED: SignatureStatus.SIGNED,
    EnvelopeStatus.DECLINED: SignatureStatus.DRAFT,
    EnvelopeStatus.VOIDED: SignatureStatus.VOIDED,
}

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


class WebhookOutcome(str, Enum):
    IGNORED_STATUS = "ignored_status"
    LEASE_NOT_FOUND = "lease_not_found"
    DUPLICATE = "duplicate"
    TERMINAL_STATE = "terminal_state"
    SIGNED = "signed"
    DECLINED = "declined"
    VOIDED = "voided"


def parse_event_timestamp(value: str | None) -> datetime:
    """Parse Connect's generatedDateTime, falling back to now when absent or unparseable."""
    if not value:
        return datetime.now(timezone.utc)
    text = _EXCESS_FRACTION.sub(r"\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return datetime.now(timezone.utc)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def is_duplicate(current: SignatureStatus, envelope_status: EnvelopeStatus) -> bool:
    return (envelope_status is EnvelopeStatus.COMPLETED and current is SignatureStatus.SIGNED) or (
        envelope_status is EnvelopeStatus.VOIDED and current is SignatureStatus.VOIDED
    )


class WebhookEventProcessor:
    def __init__(
        self,
        lease_repository: LeaseRepository,
        history_repository: SignatureHistoryRepository,
        document_store: SignedDocumentStore,
    ):
        self.leases = lease_repository
        self.history = history_repository
        self.document_store = document_store

    async def handle(self, payload: WebhookPayload) -> WebhookOutcome:
        """
        Apply a verified Connect event to its lease.

        Only unactionable statuses and unknown envelopes are swallowed; every
        other failure propagates to the caller.

        Raises:
            DocumentRetrievalError: The signed PDF could not be downloaded
            DocumentStorageError: The signed PDF could not be persisted
            StateConsistencyError: The lease could not be updated to match DocuSign
        """
        envelope_id = payload.envelope_id
        log = logger.bind(envelope_id=envelope_id, status=payload.status, event=payload.event)
        log.info("webhook.event.received", retry_count=payload.retry_count)

        try:
            envelope_status = EnvelopeStatus(payload.status)
        except ValueError:
            envelope_status = None

        if envelope_status not in ACTIONABLE_STATUSES:
            log.info("webhook.event.ignored_status")
            return WebhookOutcome.IGNORED_STATUS

        lease = await self.leases.find_by_envelope_id(envelope_id)
        if lease is None:
            log.warning("webhook.event.lease_not_found")
            return WebhookOutcome.LEASE_NOT_FOUND

        lease_id = lease.id
        current = lease.signature_status
        log = log.bind(lease_id=lease_id, lease_status=current.value)

        if is_duplicate(current, envelope_status):
            log.info("webhook.event.duplicate")
            return WebhookOutcome.DUPLICATE

        if current in TERMINAL_STATES:
            log.warning("webhook.event.terminal_state")
            return WebhookOutcome.TERMINAL_STATE

        # History is written before any lease mutation.
        await self.history.append(
            lease_id=lease_id,
            envelope_id=envelope_id,
            status=envelope_status.value,
            event=payload.event,
            event_timestamp=parse_event_timestamp(payload.generated_date_time),
            retry_count=payload.retry_count,
            recipients=payload.data.envelope_summary.recipients,
        )

        if envelope_status is EnvelopeStatus.COMPLETED:
            return await self._complete(lease_id, envelope_id, log)

        target = ENVELOPE_TARGETS[envelope_status]
        try:
            await self.leases.update_lease_status(lease_id, target)
        except SQLAlchemyError as exc:
            log.error("webhook.event.status_update_failed", target=target.value, error=str(exc))
            raise StateConsistencyError(
                f"Failed to update lease {lease_id} to {target.value} for envelope {envelope_id}: {exc}",
                context={"lease_id": lease_id, "envelope_id": envelope_id, "target": target.value},
            ) from exc

        log.info("webhook.event.applied", target=target.value)
        if envelope_status is EnvelopeStatus.DECLINED:
            return WebhookOutcome.DECLINED
        return WebhookOutcome.VOIDED

    async def _complete(self, lease_id: str, envelope_id: str, log) -> WebhookOutcome:
        content = await self.document_store.retrieve(envelope_id)
        reference = await self.document_store.store(lease_id, envelope_id, content)

        try:
            applied = await self.leases.update_signed_document(lease_id, reference)
        except SQLAlchemyError as exc:
            log.error("webhook.event.signed_update_failed", reference=reference, error=str(exc))
            raise StateConsistencyError(
                f"Signed document for lease {lease_id} stored at {reference} but the lease could not be marked SIGNED: {exc}",
                context={"lease_id": lease_id, "envelope_id": envelope_id, "reference": reference},
            ) from exc

        if not applied:
            # A concurrent delivery marked the lease SIGNED between our read and write.
            log.info("webhook.event.duplicate_after_store", reference=reference)
            return WebhookOutcome.DUPLICATE

        log.info("webhook.event.applied", target=SignatureStatus.SIGNED.value, reference=reference)
        return WebhookOutcome.SIGNED
