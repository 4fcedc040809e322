from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leasing_esign.db.base import Base, Identifier, Timestamp


class SignatureStatusHistory(Base):
    """Append-only compliance trail of processed envelope status events."""

    __tablename__ = "lease_signature_history"

    id: Mapped[Identifier]
    lease_id: Mapped[str] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True)
    envelope_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    event: Mapped[str] = mapped_column(String(80), nullable=False)
    event_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    recipients: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[Timestamp]

    lease: Mapped["Lease"] = relationship(back_populates="signature_history")
