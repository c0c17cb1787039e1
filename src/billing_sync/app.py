import sys

import uvicorn
from fastapi import FastAPI
from loguru import logger

from billing_sync.config import settings
from billing_sync.services.reconciler import get_reconciler
from billing_sync.webhooks import router

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level:<8}</level> | "
    "<cyan>{name}</cyan> | <level>{message}</level>"
)


def setup_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with the service format."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def create_app(validate_config: bool = True) -> FastAPI:
    """Build the webhook service.

    Missing secrets or credentials are a process-level failure: with
    ``validate_config`` the app refuses to start instead of failing every
    delivery later.
    """
    if validate_config:
        settings.require_webhook_secret()
        get_reconciler()

    app = FastAPI(title="Billing Sync Webhook Service")
    app.include_router(router)
    return app


def run() -> None:
    setup_logging(settings.log_level)
    uvicorn.run(create_app(), host=settings.host, port=settings.port)
