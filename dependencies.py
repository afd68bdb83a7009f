"""
dependencies.py

Responsibility: Declares the FastAPI Depends() provider that hands routes the
InstanceManager stored on app.state by the lifespan.
Does NOT: contain business logic, HTTP handlers, or scheduling.
"""

from __future__ import annotations

from fastapi import Request

from scheduler import InstanceManager


def get_manager(request: Request) -> InstanceManager:
    """
    Returns the running InstanceManager stored on app.state.

    Args:
        request: The current FastAPI Request (injected automatically).

    Returns:
        The InstanceManager started by the lifespan.
    """
    return request.app.state.manager
