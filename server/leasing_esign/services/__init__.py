from leasing_esign.services import (
    document_store,
    signature_service,
    webhook_processor,
)

__all__ = [
    "document_store",
    "signature_service",
    "webhook_processor",
]
