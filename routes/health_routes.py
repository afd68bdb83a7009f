"""
routes/health_routes.py

Responsibility: Liveness and status endpoints polled by container
orchestrators and monitoring.
Does NOT: mutate state, trigger reconciliation passes, or expose secrets.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from dependencies import get_manager
from scheduler import InstanceManager

router = APIRouter()


@router.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    """Liveness probe; always answers "pong"."""
    return "pong"


@router.get("/health")
async def health(manager: InstanceManager = Depends(get_manager)) -> dict:
    """
    Returns application health plus a summary of every managed record.

    Args:
        manager: The running InstanceManager.

    Returns:
        A dict with "status" set to "ok" and a "records" list.
    """
    return {"status": "ok", "records": manager.status()}
