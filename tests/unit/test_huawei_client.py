"""
tests/unit/test_huawei_client.py

Unit tests for providers/huawei_client.py.
All Huawei Cloud DNS calls are intercepted by respx: no real network traffic.
"""

from __future__ import annotations

import json

import httpx
import pytest

from exceptions import DnsProviderError, MissingIdentifierError
from models import HuaweiCloudProvider
from providers.dns_provider import COMMENT
from providers.huawei_client import HuaweiCloudClient

_BASE = "https://dns.cn-north-4.myhuaweicloud.com/v2"
_PROVIDER = HuaweiCloudProvider(access_key="AK", secret_access_key="SK", region="cn-north-4")


def _zones(*zones):
    return httpx.Response(200, json={"zones": list(zones), "metadata": {"total_count": len(zones)}})


def _recordsets(*recordsets):
    return httpx.Response(
        200, json={"recordsets": list(recordsets), "metadata": {"total_count": len(recordsets)}}
    )


def _recordset(name="home.example.com.", rtype="A", value="1.2.3.4", rid="rs-1"):
    return {"id": rid, "name": name, "type": rtype, "records": [value]}


def _client(http_client, make_spec, **overrides):
    return HuaweiCloudClient(http_client, make_spec(provider=_PROVIDER, **overrides), _PROVIDER)


@pytest.mark.asyncio
async def test_get_uses_fully_qualified_names(mock_http, http_client, make_spec):
    zones = mock_http.get(f"{_BASE}/zones").mock(
        return_value=_zones({"id": "z-1", "name": "example.com."})
    )
    recordsets = mock_http.get(f"{_BASE}/zones/z-1/recordsets").mock(
        return_value=_recordsets(_recordset(name="other.example.com."), _recordset())
    )
    huawei = _client(http_client, make_spec)

    assert await huawei.get() == "1.2.3.4"
    assert huawei._zone_id == "z-1"
    assert huawei._recordset_id == "rs-1"

    zone_params = zones.calls.last.request.url.params
    assert zone_params["name"] == "example.com."
    assert zone_params["search_mode"] == "equal"
    record_params = recordsets.calls.last.request.url.params
    assert record_params["name"] == "home.example.com."
    assert record_params["type"] == "A"


@pytest.mark.asyncio
async def test_requests_are_signed(mock_http, http_client, make_spec):
    route = mock_http.get(f"{_BASE}/zones").mock(
        return_value=_zones({"id": "z-1", "name": "example.com."})
    )
    mock_http.get(f"{_BASE}/zones/z-1/recordsets").mock(return_value=_recordsets())

    await _client(http_client, make_spec).get()

    headers = route.calls.last.request.headers
    assert headers["Authorization"].startswith("SDK-HMAC-SHA256 Access=AK, SignedHeaders=")
    assert "X-Sdk-Date" in headers


@pytest.mark.asyncio
async def test_get_apex_record(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=_zones({"id": "z-1", "name": "example.com."}))
    route = mock_http.get(f"{_BASE}/zones/z-1/recordsets").mock(
        return_value=_recordsets(_recordset(name="example.com."))
    )
    huawei = _client(http_client, make_spec, subdomain="@")

    assert await huawei.get() == "1.2.3.4"
    assert route.calls.last.request.url.params["name"] == "example.com."


@pytest.mark.asyncio
async def test_get_missing_zone_raises(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=_zones())
    with pytest.raises(DnsProviderError, match="does not exist"):
        await _client(http_client, make_spec).get()


@pytest.mark.asyncio
async def test_get_missing_recordset_returns_empty(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=_zones({"id": "z-1", "name": "example.com."}))
    mock_http.get(f"{_BASE}/zones/z-1/recordsets").mock(return_value=_recordsets())

    assert await _client(http_client, make_spec).get() == ""


@pytest.mark.asyncio
async def test_get_cached_recordset_deleted_returns_empty(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=_zones({"id": "z-1", "name": "example.com."}))
    mock_http.get(f"{_BASE}/zones/z-1/recordsets").mock(return_value=_recordsets(_recordset()))
    mock_http.get(f"{_BASE}/zones/z-1/recordsets/rs-1").mock(
        return_value=httpx.Response(404, json={"code": "DNS.0312", "message": "not found"})
    )
    huawei = _client(http_client, make_spec)

    await huawei.get()
    assert await huawei.get() == ""


@pytest.mark.asyncio
async def test_server_error_raises(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=httpx.Response(500, text="boom"))
    with pytest.raises(DnsProviderError, match="500"):
        await _client(http_client, make_spec).get()


@pytest.mark.asyncio
async def test_create_requires_zone(http_client, make_spec):
    with pytest.raises(MissingIdentifierError, match="zone id"):
        await _client(http_client, make_spec).create("1.2.3.4")


@pytest.mark.asyncio
async def test_create_then_update(mock_http, http_client, make_spec):
    mock_http.get(f"{_BASE}/zones").mock(return_value=_zones({"id": "z-1", "name": "example.com."}))
    mock_http.get(f"{_BASE}/zones/z-1/recordsets").mock(return_value=_recordsets())
    create = mock_http.post(f"{_BASE}/zones/z-1/recordsets").mock(
        return_value=httpx.Response(202, json={"id": "rs-9", "status": "PENDING_CREATE"})
    )
    update = mock_http.put(f"{_BASE}/zones/z-1/recordsets/rs-9").mock(
        return_value=httpx.Response(202, json={"id": "rs-9", "status": "PENDING_UPDATE"})
    )
    huawei = _client(http_client, make_spec)

    assert await huawei.get() == ""
    await huawei.create("1.2.3.4")
    await huawei.update("5.6.7.8")

    body = json.loads(create.calls.last.request.content)
    assert body == {
        "name": "home.example.com.",
        "type": "A",
        "records": ["1.2.3.4"],
        "ttl": 120,
        "description": COMMENT,
    }
    assert json.loads(update.calls.last.request.content)["records"] == ["5.6.7.8"]
