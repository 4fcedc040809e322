from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from leasing_esign.api.dependencies.esignature import get_signature_service
from leasing_esign.core.exceptions import (
    ConfigurationError,
    ESignatureError,
    EnvelopeDispatchError,
    NotFoundError,
    VerificationError,
)
from leasing_esign.core.logging import get_logger
from leasing_esign.schemas.envelope import (
    EnvelopeResponseOut,
    GenerateSigningUrlRequest,
    SendForSignatureRequest,
    SignedDocumentUrlResponse,
    SigningUrlResponse,
)
from leasing_esign.services.signature_service import SignatureService

logger = get_logger(__name__)
router = APIRouter(prefix="/leases", tags=["leases"])


def to_http_error(exc: ESignatureError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.error_message)
    if isinstance(exc, EnvelopeDispatchError) and exc.error_code == "invalid_request":
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.error_message)
    if isinstance(exc, VerificationError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.reason)
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.error_message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.error_message)


@router.post("/{lease_id}/send-for-signature", response_model=EnvelopeResponseOut, response_model_by_alias=True)
async def send_for_signature(
    lease_id: str,
    payload: SendForSignatureRequest | None = None,
    service: SignatureService = Depends(get_signature_service),
) -> EnvelopeResponseOut:
    payload = payload or SendForSignatureRequest()
    position = payload.signature_position.to_position() if payload.signature_position else None
    try:
        envelope = await service.send_lease_for_signature(lease_id, payload.recipient_email, position)
    except ESignatureError as exc:
        logger.error("lease.send_for_signature.failed", lease_id=lease_id, error=exc.error_message, error_code=exc.error_code)
        raise to_http_error(exc) from exc
    return EnvelopeResponseOut.from_envelope(envelope)


@router.post("/{lease_id}/generate-signing-url", response_model=SigningUrlResponse, response_model_by_alias=True)
async def generate_signing_url(
    lease_id: str,
    payload: GenerateSigningUrlRequest,
    service: SignatureService = Depends(get_signature_service),
) -> SigningUrlResponse:
    try:
        signing = await service.generate_signing_url(
            lease_id,
            payload.recipient_email,
            payload.recipient_name,
            payload.return_url,
        )
    except ESignatureError as exc:
        logger.error("lease.signing_url.failed", lease_id=lease_id, error=exc.error_message, error_code=exc.error_code)
        raise to_http_error(exc) from exc
    return SigningUrlResponse(signing_url=signing.url, envelope_id=signing.envelope_id, expires_at=signing.expires_at)


@router.get("/{lease_id}/signed-document", response_model=SignedDocumentUrlResponse, response_model_by_alias=True)
async def get_signed_document(
    lease_id: str,
    service: SignatureService = Depends(get_signature_service),
) -> SignedDocumentUrlResponse:
    try:
        download_url = await service.get_signed_document_url(lease_id)
    except ESignatureError as exc:
        raise to_http_error(exc) from exc
    return SignedDocumentUrlResponse(download_url=download_url)


@router.get("/{lease_id}/signed-document/content")
async def get_signed_document_content(
    lease_id: str,
    service: SignatureService = Depends(get_signature_service),
) -> Response:
    try:
        content = await service.get_signed_document_content(lease_id)
    except ESignatureError as exc:
        raise to_http_error(exc) from exc
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="Lease_{lease_id}_signed.pdf"'},
    )
