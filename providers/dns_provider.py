"""
providers/dns_provider.py

Responsibility: Defines the DNSUpdateHandler Protocol and the pieces of
reconciliation behaviour every backend shares: exhaustive paginated search,
default page sizes and delays, and the record comment.
Does NOT: make HTTP calls, sign requests, or implement any backend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, TypeVar, runtime_checkable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Largest page most backends accept for list calls.
PER_PAGE_COUNT = 500

# Pause between consecutive page requests so vendor rate limits are respected.
PAGE_DELAY_SECONDS = 0.5

# Attached to records as comment / remark / description where supported.
COMMENT = "Created/Updated by ddns-keeper"


# ---------------------------------------------------------------------------
# Abstract interface: all DNS backends must implement this contract
# ---------------------------------------------------------------------------


@runtime_checkable
class DNSUpdateHandler(Protocol):
    """
    Reads and writes the single record one DdnsInstance manages.

    Every implementation owns a private cache of backend identifiers (zone,
    domain, record ids). They are resolved on first need and reused for the
    rest of the process; nothing invalidates them automatically.

    Adding a new backend means implementing this protocol and adding one
    case to providers.factory.build_handler.
    """

    async def get(self) -> str:
        """
        Returns the address currently stored in the record.

        Returns:
            The current value, or "" if the record does not exist.

        Raises:
            DnsProviderError: If the backend call fails.
            OperationTimeoutError: If a call exceeded its deadline.
        """
        ...

    async def create(self, address: str) -> None:
        """
        Creates the record with the given address.

        Raises:
            MissingIdentifierError: If a prerequisite id (zone/domain) was
                never resolved; call get() first.
            DnsProviderError: If the backend call fails.
        """
        ...

    async def update(self, new_address: str) -> None:
        """
        Points the existing record at a new address.

        Raises:
            MissingIdentifierError: If no record id is known yet.
            DnsProviderError: If the backend call fails.
        """
        ...

    async def aclose(self) -> None:
        """Releases backend resources held by the handler."""
        ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

# fetch_page(page_index) -> (items on that page, total item count)
PageFetcher = Callable[[int], Awaitable[tuple[Sequence[T], int]]]


async def search_pages(
    fetch_page: PageFetcher[T],
    predicate: Callable[[T], bool],
    *,
    page_size: int = PER_PAGE_COUNT,
    page_delay: float | None = None,
) -> T | None:
    """
    Walks a paginated listing until an item matches or pages run out.

    Pages are requested one at a time, starting at index 0. A fixed delay is
    inserted between page requests (never before the first one).

    Args:
        fetch_page: Coroutine returning one page of items and the total
            number of items the backend reports.
        predicate: Exact-match test applied to every item.
        page_size: Number of items the backend returns per full page.
        page_delay: Seconds to sleep between page requests; defaults to
            PAGE_DELAY_SECONDS.

    Returns:
        The first matching item, or None if no page contains one.
    """
    delay = PAGE_DELAY_SECONDS if page_delay is None else page_delay
    page = 0
    while True:
        if page > 0:
            await asyncio.sleep(delay)

        items, total = await fetch_page(page)
        for item in items:
            if predicate(item):
                return item

        page += 1
        # Stop on an empty page, or once every reported item has been seen.
        if not items or page * page_size >= total:
            logger.debug("Searched %d page(s) without a match.", page)
            return None
