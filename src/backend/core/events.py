"""
Application lifecycle event handlers.

Startup validates storage configuration and optionally provisions the Cosmos
containers; shutdown closes the shared Cosmos client.
"""

from typing import Callable

import structlog
from azure.cosmos.exceptions import CosmosHttpResponseError
from fastapi import FastAPI

from core.config import settings
from db import close_cosmos, ensure_containers, get_database
from repositories.provider import is_cosmos_enabled

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("app_starting", app=settings.APP_NAME, env=settings.APP_ENV)

        if not is_cosmos_enabled():
            logger.warning("cosmos_not_configured")
        elif settings.COSMOS_CREATE_CONTAINERS:
            try:
                await ensure_containers(await get_database())
                logger.info("cosmos_containers_ready", database=settings.AZURE_COSMOS_DATABASE)
            except CosmosHttpResponseError as e:
                logger.exception("cosmos_provisioning_failed", status_code=e.status_code)
                raise

        logger.info("app_started")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("app_stopping")
        await close_cosmos()
        logger.info("app_stopped")

    return stop_app
