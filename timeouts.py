"""
timeouts.py

Responsibility: Bounds a single outbound call with a wall-clock deadline and
translates expiry into OperationTimeoutError.
Does NOT: retry, back off, or cancel anything outside the wrapped block.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from exceptions import OperationTimeoutError

# Deadline for one DNS backend API call.
CALL_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def deadline(seconds: float, operation: str) -> AsyncIterator[None]:
    """
    Async context manager that cancels the enclosed block after `seconds`.

    Cancellation of the surrounding task (e.g. on shutdown) still propagates
    as asyncio.CancelledError; only the deadline itself is converted.

    Args:
        seconds: Maximum wall-clock time allowed for the block.
        operation: Short description used in the error message.

    Raises:
        OperationTimeoutError: If the block does not finish in time.
    """
    try:
        async with asyncio.timeout(seconds):
            yield
    except TimeoutError as exc:
        if isinstance(exc, OperationTimeoutError):
            raise
        raise OperationTimeoutError(f"{operation} timed out after {seconds:g}s") from exc
