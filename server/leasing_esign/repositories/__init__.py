from leasing_esign.repositories.lease_repository import LeaseRepository
from leasing_esign.repositories.signature_history_repository import SignatureHistoryRepository
from leasing_esign.repositories.signed_document_repository import SignedDocumentRepository

__all__ = [
    "LeaseRepository",
    "SignatureHistoryRepository",
    "SignedDocumentRepository",
]
