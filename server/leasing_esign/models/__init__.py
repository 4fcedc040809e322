from leasing_esign.models.lease import Lease, SignatureStatus
from leasing_esign.models.signature_history import SignatureStatusHistory
from leasing_esign.models.signed_document import SignedDocument

__all__ = [
    "Lease",
    "SignatureStatus",
    "SignatureStatusHistory",
    "SignedDocument",
]
