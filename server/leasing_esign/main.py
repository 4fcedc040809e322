from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from leasing_esign.api.dependencies.esignature import close_esignature_clients
from leasing_esign.api.routes import health, leases, webhooks
from leasing_esign.core.config import Settings, get_settings
from leasing_esign.core.exceptions import ConfigurationError
from leasing_esign.core.logging import configure_logging, get_logger
from leasing_esign.db.session import get_engine, init_models

logger = get_logger(__name__)


def create_application(settings: Settings | None = None, init_db: bool = True) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: ARG001
        logger.info("application.startup", environment=settings.environment)
        if init_db:
            await init_models()
            logger.info("database.models.initialised")
        yield
        await close_esignature_clients()
        if init_db:
            await get_engine().dispose()
        logger.info("application.shutdown")

    application = FastAPI(title=settings.app_name, lifespan=lifespan)
    application.include_router(health.router)
    application.include_router(leases.router)
    application.include_router(webhooks.router)

    @application.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("application.configuration_error", path=request.url.path, error=exc.error_message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": exc.error_message, "code": exc.error_code},
        )

    return application


app = create_application()
