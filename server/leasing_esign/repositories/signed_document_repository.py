from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from leasing_esign.models.signed_document import SignedDocument


class SignedDocumentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        lease_id: str,
        envelope_id: str,
        content: bytes,
        content_type: str = "application/pdf",
    ) -> SignedDocument:
        document = SignedDocument(
            lease_id=lease_id,
            envelope_id=envelope_id,
            content=content,
            content_type=content_type,
            size_bytes=len(content),
        )
        self.session.add(document)
        await self.session.commit()
        return document

    async def get(self, document_id: str) -> SignedDocument | None:
        return await self.session.get(SignedDocument, document_id)
