"""
providers/huawei_client.py

Responsibility: Implements the DNSUpdateHandler protocol for one record using
the Huawei Cloud DNS v2 REST API with AK/SK request signing.
Does NOT: detect addresses, decide between create and update, or schedule jobs.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError, MissingIdentifierError
from models import HuaweiCloudProvider, RecordSpec
from providers.dns_provider import COMMENT, PER_PAGE_COUNT, search_pages
from providers.signing import HuaweiCloudAuth
from timeouts import CALL_TIMEOUT_SECONDS, deadline

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 120


class HuaweiCloudClient:
    """
    Implements DNSUpdateHandler for Huawei Cloud DNS.

    Huawei stores zone and recordset names fully qualified with a trailing
    dot, so both are compared in that form.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        spec: RecordSpec,
        provider: HuaweiCloudProvider,
    ) -> None:
        self._client = http_client
        self._zone_name = f"{spec.domain}."
        self._record_name = f"{spec.fqdn}."
        self._record_type = spec.record_type
        self._base = f"https://dns.{provider.region}.myhuaweicloud.com/v2"
        self._auth = HuaweiCloudAuth(provider.access_key, provider.secret_access_key)

        self._zone_id = ""
        self._recordset_id = ""

    # ---------------------------------------------------------------------------
    # DNSUpdateHandler implementation
    # ---------------------------------------------------------------------------

    async def get(self) -> str:
        if not self._zone_id:
            logger.debug("Zone id not present, searching for %s.", self._zone_name)
            await self._find_zone_id()

        if not self._recordset_id:
            logger.debug("Recordset id not present, searching for %s.", self._record_name)
            recordset = await self._find_recordset()
            if recordset is None:
                return ""
            self._recordset_id = recordset["id"]
            logger.debug("Got recordset id %s.", self._recordset_id)
            return self._first_value(recordset)

        url = f"{self._base}/zones/{self._zone_id}/recordsets/{self._recordset_id}"
        body = await self._request("GET", url, not_found_ok=True)
        if body is None:
            return ""
        return self._first_value(body)

    async def create(self, address: str) -> None:
        if not self._zone_id:
            raise MissingIdentifierError("zone id is empty")

        logger.debug("Creating DNS record %s for address %s.", self._record_name, address)
        body = await self._request(
            "POST", f"{self._base}/zones/{self._zone_id}/recordsets", json=self._payload(address)
        )
        self._recordset_id = body["id"]

    async def update(self, new_address: str) -> None:
        if not self._zone_id:
            raise MissingIdentifierError("zone id is empty")
        if not self._recordset_id:
            raise MissingIdentifierError("record id is empty")

        logger.debug("Updating DNS record %s to %s.", self._record_name, new_address)
        await self._request(
            "PUT",
            f"{self._base}/zones/{self._zone_id}/recordsets/{self._recordset_id}",
            json=self._payload(new_address),
        )

    async def aclose(self) -> None:
        return None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _payload(self, address: str) -> dict[str, Any]:
        return {
            "name": self._record_name,
            "type": self._record_type,
            "records": [address],
            "ttl": _DEFAULT_TTL,
            "description": COMMENT,
        }

    @staticmethod
    def _first_value(recordset: dict[str, Any]) -> str:
        records = recordset.get("records") or []
        return records[0] if records else ""

    @staticmethod
    def _total_count(body: dict[str, Any], items: list[dict[str, Any]]) -> int:
        return int((body.get("metadata") or {}).get("total_count", len(items)))

    async def _find_zone_id(self) -> None:
        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            body = await self._request(
                "GET",
                f"{self._base}/zones",
                params={
                    "type": "public",
                    "name": self._zone_name,
                    "search_mode": "equal",
                    "offset": page * PER_PAGE_COUNT,
                    "limit": PER_PAGE_COUNT,
                },
            )
            zones = body.get("zones") or []
            return zones, self._total_count(body, zones)

        zone = await search_pages(fetch, lambda z: z.get("name") == self._zone_name)
        if zone is None:
            raise DnsProviderError(f"zone {self._zone_name} does not exist")
        self._zone_id = zone["id"]
        logger.debug("Got zone id %s.", self._zone_id)

    async def _find_recordset(self) -> dict[str, Any] | None:
        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            body = await self._request(
                "GET",
                f"{self._base}/zones/{self._zone_id}/recordsets",
                params={
                    "type": self._record_type,
                    "name": self._record_name,
                    "search_mode": "equal",
                    "offset": page * PER_PAGE_COUNT,
                    "limit": PER_PAGE_COUNT,
                },
            )
            recordsets = body.get("recordsets") or []
            return recordsets, self._total_count(body, recordsets)

        return await search_pages(
            fetch,
            lambda r: r.get("name") == self._record_name and r.get("type") == self._record_type,
        )

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        not_found_ok: bool = False,
    ) -> dict[str, Any] | None:
        """
        Sends one signed request to the Huawei Cloud DNS API.

        Returns:
            The decoded JSON body, or None on HTTP 404 when `not_found_ok`.

        Raises:
            DnsProviderError: On transport failures or HTTP errors.
            OperationTimeoutError: If the call exceeded its deadline.
        """
        headers = {"Content-Type": "application/json"}
        try:
            async with deadline(CALL_TIMEOUT_SECONDS, f"Huawei Cloud {method} {url}"):
                response = await self._client.request(
                    method, url, params=params, json=json, headers=headers, auth=self._auth
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if not_found_ok and exc.response.status_code == 404:
                logger.debug("Huawei Cloud returned 404 for %s %s.", method, url)
                return None
            raise DnsProviderError(
                f"Huawei Cloud API error {exc.response.status_code} for {method} {url}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DnsProviderError(
                f"Network error calling Huawei Cloud API ({method} {url}): {exc}"
            ) from exc

        return response.json()
