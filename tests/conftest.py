"""
tests/conftest.py

Fixtures shared by the unit and integration suites.
Outbound HTTP is always routed through respx; tests never reach the network.
"""

from __future__ import annotations

import dataclasses

import httpx
import pytest
import respx

import providers.dns_provider
from models import (
    CloudflareProvider,
    LocalAddressPolicy,
    NetworkStack,
    RecordSpec,
    ThirdPartyDetection,
)

# ---------------------------------------------------------------------------
# Pagination: never sleep between pages in tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def no_page_delay(monkeypatch):
    """Removes the inter-page delay so paginated searches run instantly."""
    monkeypatch.setattr(providers.dns_provider, "PAGE_DELAY_SECONDS", 0.0)


# ---------------------------------------------------------------------------
# Record spec factory
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_spec():
    """
    Returns a factory building RecordSpec instances with sensible defaults.

    Any field can be overridden by keyword, e.g. make_spec(subdomain="@").
    """
    base = RecordSpec(
        name="home-v4",
        domain="example.com",
        subdomain="home",
        stack=NetworkStack.IPV4,
        cron="*/5 * * * *",
        provider=CloudflareProvider(api_token="test-token"),
        detection=ThirdPartyDetection(
            url="https://ip.example.net/",
            local_address_policy=LocalAddressPolicy.IGNORE,
        ),
    )

    def _make(**overrides) -> RecordSpec:
        return dataclasses.replace(base, **overrides)

    return _make


# ---------------------------------------------------------------------------
# respx router
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_http():
    """
    Activates a respx router for the duration of one test.

    Register routes on it before exercising a detector or handler; requests
    with no matching route fail instead of leaving the process.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


# ---------------------------------------------------------------------------
# Client under test
# ---------------------------------------------------------------------------


@pytest.fixture()
async def http_client():
    """
    A real httpx.AsyncClient, closed when the test finishes.

    Combine with mock_http so its requests hit respx routes.
    """
    async with httpx.AsyncClient() as client:
        yield client
