from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leasing_esign.db.base import Base, Identifier, TimestampMixin


class SignatureStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"
    VOIDED = "VOIDED"


class Lease(TimestampMixin, Base):
    """Signature-relevant projection of a lease record.

    Leases are created by the leasing module; this subsystem only reads them and
    applies envelope/status/document updates.
    """

    __tablename__ = "leases"

    id: Mapped[Identifier]
    tenant_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    tenant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pdf_document_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    property_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    suite_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    docusign_envelope_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    signature_status: Mapped[SignatureStatus] = mapped_column(
        SAEnum(SignatureStatus), default=SignatureStatus.DRAFT, nullable=False
    )
    signed_document_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_for_signature_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    signature_history: Mapped[list["SignatureStatusHistory"]] = relationship(
        back_populates="lease", cascade="all,delete-orphan"
    )
