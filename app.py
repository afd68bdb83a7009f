"""
app.py

Responsibility: Builds the FastAPI application whose lifespan owns the shared
HTTP client and the InstanceManager.
Does NOT: parse the command line, load configuration files, or contain
reconciliation logic.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from models import RecordSpec
from routes.health_routes import router as health_router
from scheduler import DEFAULT_GRACE_PERIOD, InstanceManager

logger = logging.getLogger(__name__)

_USER_AGENT = "ddns-keeper"


def create_app(specs: list[RecordSpec], grace_period: float = DEFAULT_GRACE_PERIOD) -> FastAPI:
    """
    Creates the application for a loaded configuration.

    On startup the lifespan opens one httpx.AsyncClient, builds the
    InstanceManager and starts its jobs. On shutdown (SIGINT/SIGTERM via
    uvicorn) it drains the manager within `grace_period`, then closes the
    client.

    Args:
        specs: Record specs returned by config.load_config.
        grace_period: Seconds in-flight passes may run after shutdown starts.

    Returns:
        A FastAPI app ready to be served by uvicorn.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with httpx.AsyncClient(headers={"User-Agent": _USER_AGENT}) as http_client:
            manager = InstanceManager(specs, http_client, grace_period=grace_period)
            app.state.manager = manager
            manager.start()
            logger.info("ddns-keeper started.")
            try:
                yield
            finally:
                await manager.shutdown()
                logger.info("ddns-keeper stopped.")

    app = FastAPI(title="ddns-keeper", lifespan=lifespan)
    app.include_router(health_router)
    return app
