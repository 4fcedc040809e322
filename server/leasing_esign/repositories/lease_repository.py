from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leasing_esign.core.logging import get_logger
from leasing_esign.models.lease import Lease, SignatureStatus

logger = get_logger(__name__)


class LeaseRepository:
    """Lease reads and the signature-related writes applied to them.

    Every write commits immediately; webhook handling relies on each step being
    durable before the next one starts.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, lease_id: str) -> Lease | None:
        return await self.session.get(Lease, lease_id)

    async def find_by_envelope_id(self, envelope_id: str) -> Lease | None:
        result = await self.session.execute(
            select(Lease).where(Lease.docusign_envelope_id == envelope_id).limit(1)
        )
        return result.scalars().first()

    async def update_envelope_id(self, lease_id: str, envelope_id: str) -> Lease | None:
        """Record a freshly sent envelope and move the lease to PENDING_SIGNATURE."""
        lease = await self.find_by_id(lease_id)
        if lease is None:
            return None

        lease.docusign_envelope_id = envelope_id
        lease.signature_status = SignatureStatus.PENDING_SIGNATURE
        lease.sent_for_signature_at = datetime.now(timezone.utc)
        await self.session.commit()
        await self.session.refresh(lease)

        logger.info("lease.envelope.recorded", lease_id=lease_id, envelope_id=envelope_id)
        return lease

    async def update_signed_document(self, lease_id: str, document_ref: str) -> bool:
        """
        Mark a lease SIGNED with its stored document reference.

        The write only applies while the lease is not already SIGNED, so two
        concurrent completions cannot both win. Returns False when no row changed.
        """
        result = await self.session.execute(
            update(Lease)
            .where(Lease.id == lease_id, Lease.signature_status != SignatureStatus.SIGNED)
            .values(
                signature_status=SignatureStatus.SIGNED,
                signed_document_ref=document_ref,
                signed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.session.commit()

        applied = (result.rowcount or 0) > 0
        logger.info("lease.signed_document.recorded", lease_id=lease_id, applied=applied)
        return applied

    async def update_lease_status(self, lease_id: str, status: SignatureStatus) -> bool:
        result = await self.session.execute(
            update(Lease)
            .where(Lease.id == lease_id)
            .values(signature_status=status)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.commit()

        applied = (result.rowcount or 0) > 0
        logger.info("lease.status.updated", lease_id=lease_id, status=status.value, applied=applied)
        return applied
