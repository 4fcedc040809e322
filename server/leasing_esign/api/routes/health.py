from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leasing_esign import __version__
from leasing_esign.api.dependencies.database import get_db
from leasing_esign.core.config import get_settings
from leasing_esign.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    settings = get_settings()
    health_status: Dict[str, Any] = {
        "status": "ok",
        "environment": settings.environment,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {"status": "ok"}
    except SQLAlchemyError as e:
        logger.error("health.database.failed", error=str(e))
        health_status["checks"]["database"] = {"status": "unavailable", "error": str(e)}
        health_status["status"] = "degraded"

    health_status["checks"]["docusign"] = {
        "status": "ok" if not settings.missing_docusign_settings() else "not_configured",
    }
    health_status["checks"]["webhook_secret"] = {
        "status": "ok" if settings.docusign_webhook_secret else "not_configured",
    }
    return health_status
