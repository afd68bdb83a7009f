"""
tests/unit/test_cloudflare_client.py

Unit tests for providers/cloudflare_client.py.
All Cloudflare API calls are intercepted by respx: no real network traffic.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from exceptions import DnsProviderError, MissingIdentifierError, OperationTimeoutError
from models import CloudflareProvider
import providers.cloudflare_client as cloudflare_client
from providers.cloudflare_client import CloudflareClient
from providers.dns_provider import COMMENT

_ZONE = "zone123"
_TOKEN = "test-token"
_BASE = "https://api.cloudflare.com/client/v4"


def _cf_response(result, success=True, total=None):
    """Helper: build a Cloudflare-shaped JSON response dict."""
    body = {"success": success, "result": result, "errors": []}
    if total is not None:
        body["result_info"] = {"total_count": total}
    return body


def _record_dict(**kwargs):
    return {
        "id": kwargs.get("id", "rec1"),
        "name": kwargs.get("name", "home.example.com"),
        "content": kwargs.get("content", "1.2.3.4"),
        "type": kwargs.get("type", "A"),
        "ttl": 120,
        "proxied": False,
    }


def _mock_zone(mock_http):
    return mock_http.get(f"{_BASE}/zones").mock(
        return_value=httpx.Response(200, json=_cf_response([{"id": _ZONE, "name": "example.com"}], total=1))
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bearer_token_is_sent(mock_http, http_client, make_spec):
    route = _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([], total=0))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))
    await cf.get()

    assert route.calls.last.request.headers["Authorization"] == f"Bearer {_TOKEN}"


@pytest.mark.asyncio
async def test_global_key_and_email_are_sent(mock_http, http_client, make_spec):
    route = _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([], total=0))
    )
    provider = CloudflareProvider(global_api_key="gk", email="me@example.com")
    cf = CloudflareClient(http_client, make_spec(provider=provider), provider)
    await cf.get()

    headers = route.calls.last.request.headers
    assert headers["X-Auth-Key"] == "gk"
    assert headers["X-Auth-Email"] == "me@example.com"


@pytest.mark.asyncio
async def test_missing_credentials_rejected(http_client, make_spec):
    with pytest.raises(DnsProviderError):
        CloudflareClient(http_client, make_spec(), CloudflareProvider())


# ---------------------------------------------------------------------------
# get
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_returns_existing_record_content(mock_http, http_client, make_spec):
    """get resolves the zone, finds the record by exact name and type, and caches its id."""
    _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([_record_dict()], total=1))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    assert await cf.get() == "1.2.3.4"
    assert cf._zone_id == _ZONE
    assert cf._record_id == "rec1"


@pytest.mark.asyncio
async def test_get_returns_empty_when_record_missing(mock_http, http_client, make_spec):
    _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([], total=0))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    assert await cf.get() == ""


@pytest.mark.asyncio
async def test_get_ignores_other_names_and_types(mock_http, http_client, make_spec):
    """Only an exact match on FQDN and record type counts."""
    _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(
            200,
            json=_cf_response(
                [
                    _record_dict(id="x", name="home.example.com.evil.net"),
                    _record_dict(id="y", type="AAAA", content="2001:db8::1"),
                ],
                total=2,
            ),
        )
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    assert await cf.get() == ""
    assert cf._record_id == ""


@pytest.mark.asyncio
async def test_get_walks_pages(mock_http, http_client, make_spec):
    """The record is found on the third page of results."""
    _mock_zone(mock_http)
    filler = [_record_dict(id=f"f{i}", name=f"other{i}.example.com") for i in range(500)]
    route = mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        side_effect=[
            httpx.Response(200, json=_cf_response(filler, total=1001)),
            httpx.Response(200, json=_cf_response(filler, total=1001)),
            httpx.Response(200, json=_cf_response([_record_dict(id="late")], total=1001)),
        ]
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    assert await cf.get() == "1.2.3.4"
    assert cf._record_id == "late"
    assert [call.request.url.params["page"] for call in route.calls] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_get_uses_cached_ids(mock_http, http_client, make_spec):
    """Once ids are cached, get reads the record by id without listing again."""
    zone_route = _mock_zone(mock_http)
    list_route = mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([_record_dict()], total=1))
    )
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records/rec1").mock(
        return_value=httpx.Response(200, json=_cf_response(_record_dict(content="5.6.7.8")))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    await cf.get()
    assert await cf.get() == "5.6.7.8"
    assert zone_route.call_count == 1
    assert list_route.call_count == 1


@pytest.mark.asyncio
async def test_get_cached_record_deleted_returns_empty(mock_http, http_client, make_spec):
    """A 404 on the cached record id means the record is gone."""
    _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([_record_dict()], total=1))
    )
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records/rec1").mock(
        return_value=httpx.Response(404, json={"success": False, "errors": [{"code": 81044}]})
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    await cf.get()
    assert await cf.get() == ""


@pytest.mark.asyncio
async def test_get_unknown_zone_raises(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=httpx.Response(200, json=_cf_response([], total=0)))
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    with pytest.raises(DnsProviderError, match="no Cloudflare zone"):
        await cf.get()


@pytest.mark.asyncio
async def test_get_raises_on_api_failure(mock_http, http_client, make_spec):
    """get raises DnsProviderError when success=false."""
    mock_http.get(f"{_BASE}/zones").mock(
        return_value=httpx.Response(200, json={"success": False, "errors": [{"message": "bad token"}], "result": []})
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    with pytest.raises(DnsProviderError, match="bad token"):
        await cf.get()


@pytest.mark.asyncio
async def test_get_raises_on_http_error(mock_http, http_client, make_spec):
    """get raises DnsProviderError on HTTP 401."""
    mock_http.get(f"{_BASE}/zones").mock(return_value=httpx.Response(401, json={"errors": ["unauthorized"]}))
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    with pytest.raises(DnsProviderError, match="401"):
        await cf.get()


@pytest.mark.asyncio
async def test_get_raises_on_network_error(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(side_effect=httpx.ConnectError("boom"))
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    with pytest.raises(DnsProviderError, match="Network error"):
        await cf.get()


# ---------------------------------------------------------------------------
# create / update
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_without_zone_raises(http_client, make_spec):
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))
    with pytest.raises(MissingIdentifierError):
        await cf.create("1.2.3.4")


@pytest.mark.asyncio
async def test_create_posts_record_and_caches_id(mock_http, http_client, make_spec):
    """create sends name, type, TTL and comment, and a later get reuses the zone id."""
    zone_route = _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([], total=0))
    )
    post = mock_http.post(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response(_record_dict(id="new1")))
    )
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records/new1").mock(
        return_value=httpx.Response(200, json=_cf_response(_record_dict(id="new1")))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    assert await cf.get() == ""
    await cf.create("1.2.3.4")
    assert await cf.get() == "1.2.3.4"

    body = json.loads(post.calls.last.request.content)
    assert body == {
        "type": "A",
        "name": "home.example.com",
        "content": "1.2.3.4",
        "ttl": 120,
        "proxied": False,
        "comment": COMMENT,
    }
    assert zone_route.call_count == 1


@pytest.mark.asyncio
async def test_create_apex_uses_bare_domain(mock_http, http_client, make_spec):
    """The "@" marker is never sent as part of the name."""
    _mock_zone(mock_http)
    list_route = mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([], total=0))
    )
    post = mock_http.post(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response(_record_dict(id="apex", name="example.com")))
    )
    cf = CloudflareClient(http_client, make_spec(subdomain="@"), CloudflareProvider(api_token=_TOKEN))

    await cf.get()
    await cf.create("1.2.3.4")

    assert list_route.calls.last.request.url.params["name"] == "example.com"
    assert json.loads(post.calls.last.request.content)["name"] == "example.com"


@pytest.mark.asyncio
async def test_update_without_record_raises(mock_http, http_client, make_spec):
    _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([], total=0))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    await cf.get()
    with pytest.raises(MissingIdentifierError, match="record id"):
        await cf.update("9.9.9.9")


@pytest.mark.asyncio
async def test_update_puts_new_content(mock_http, http_client, make_spec):
    _mock_zone(mock_http)
    mock_http.get(f"{_BASE}/zones/{_ZONE}/dns_records").mock(
        return_value=httpx.Response(200, json=_cf_response([_record_dict()], total=1))
    )
    put = mock_http.put(f"{_BASE}/zones/{_ZONE}/dns_records/rec1").mock(
        return_value=httpx.Response(200, json=_cf_response(_record_dict(content="9.9.9.9")))
    )
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    await cf.get()
    await cf.update("9.9.9.9")

    body = json.loads(put.calls.last.request.content)
    assert body["content"] == "9.9.9.9"
    assert body["ttl"] == 120
    assert body["proxied"] is False


@pytest.mark.asyncio
async def test_slow_api_call_times_out(mock_http, http_client, make_spec, monkeypatch):
    """A call that outlives its deadline is cut off with OperationTimeoutError."""
    monkeypatch.setattr(cloudflare_client, "CALL_TIMEOUT_SECONDS", 0.05)

    async def slow_zone_lookup(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=_cf_response([]))

    mock_http.get(f"{_BASE}/zones").mock(side_effect=slow_zone_lookup)
    cf = CloudflareClient(http_client, make_spec(), CloudflareProvider(api_token=_TOKEN))

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(OperationTimeoutError, match="timed out"):
        await cf.get()
    assert loop.time() - started < 1.0
