from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from leasing_esign.api.dependencies.database import get_db
from leasing_esign.api.dependencies.esignature import (
    WebhookProcessorFactory,
    get_webhook_processor_factory,
    get_webhook_verifier,
)
from leasing_esign.core.exceptions import VerificationError
from leasing_esign.core.logging import bind_request_context, clear_request_context, get_logger
from leasing_esign.integrations.esignature.webhook import WebhookVerifier, signature_headers
from leasing_esign.schemas.webhook import WebhookPayload

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

ACKNOWLEDGED = {"status": "received"}


@router.post("/docusign")
async def docusign_webhook(
    request: Request,
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    processor_factory: WebhookProcessorFactory = Depends(get_webhook_processor_factory),
    session: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """
    DocuSign Connect listener.

    Answers 401 only when the HMAC check fails. Every verified delivery is
    acknowledged with 200, including ones that fail to parse or process;
    those failures are logged.
    """
    # Must be the exact bytes on the wire; nothing may parse the body first.
    raw_body = await request.body()
    source_ip = request.client.host if request.client else None

    try:
        verifier.verify(raw_body, signature_headers(request.headers), source_ip=source_ip)
    except VerificationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.reason) from exc

    try:
        payload = WebhookPayload.model_validate_json(raw_body)
    except ValidationError as exc:
        logger.error("webhook.payload.invalid", source_ip=source_ip, errors=exc.errors(include_url=False))
        return ACKNOWLEDGED

    bind_request_context(envelope_id=payload.envelope_id)
    try:
        outcome = await processor_factory(session).handle(payload)
        logger.info("webhook.processed", outcome=outcome.value)
    except Exception as exc:
        logger.error("webhook.processing_failed", error=str(exc), error_type=type(exc).__name__, exc_info=True)
    finally:
        clear_request_context()

    return ACKNOWLEDGED
