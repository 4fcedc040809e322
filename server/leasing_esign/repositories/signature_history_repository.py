from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leasing_esign.models.signature_history import SignatureStatusHistory


class SignatureHistoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        *,
        lease_id: str,
        envelope_id: str,
        status: str,
        event: str,
        event_timestamp: datetime,
        retry_count: int = 0,
        recipients: Any = None,
    ) -> SignatureStatusHistory:
        entry = SignatureStatusHistory(
            lease_id=lease_id,
            envelope_id=envelope_id,
            status=status,
            event=event,
            event_timestamp=event_timestamp,
            retry_count=retry_count,
            recipients=recipients,
        )
        self.session.add(entry)
        await self.session.commit()
        return entry

    async def list_for_lease(self, lease_id: str) -> Sequence[SignatureStatusHistory]:
        result = await self.session.execute(
            select(SignatureStatusHistory)
            .where(SignatureStatusHistory.lease_id == lease_id)
            .order_by(SignatureStatusHistory.created_at, SignatureStatusHistory.event_timestamp)
        )
        return result.scalars().all()
