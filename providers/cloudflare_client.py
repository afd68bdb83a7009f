"""
providers/cloudflare_client.py

Responsibility: Implements the DNSUpdateHandler protocol for one record using
the Cloudflare REST API (v4). All Cloudflare HTTP calls are concentrated here.
Does NOT: detect addresses, decide between create and update, or schedule jobs.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError, MissingIdentifierError
from models import CloudflareProvider, RecordSpec
from providers.dns_provider import COMMENT, PER_PAGE_COUNT, search_pages
from timeouts import CALL_TIMEOUT_SECONDS, deadline

logger = logging.getLogger(__name__)

_CLOUDFLARE_BASE = "https://api.cloudflare.com/client/v4"

# TTL in seconds for records we create or update
_DEFAULT_TTL = 120


class CloudflareClient:
    """
    Implements DNSUpdateHandler for the Cloudflare DNS REST API (v4).

    The zone id and record id are looked up once and cached on the instance
    for the remainder of the process.

    The shared httpx.AsyncClient is owned by the caller and is not closed here.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        spec: RecordSpec,
        provider: CloudflareProvider,
    ) -> None:
        """
        Initialises the client for a single record.

        Args:
            http_client: Shared client the requests are sent through.
            spec: The record this handler manages.
            provider: Cloudflare credentials (API token, or global key + email).
        """
        self._client = http_client
        self._domain = spec.domain
        self._fqdn = spec.fqdn
        self._record_type = spec.record_type

        if provider.api_token:
            self._headers = {"Authorization": f"Bearer {provider.api_token}"}
        elif provider.global_api_key and provider.email:
            self._headers = {"X-Auth-Key": provider.global_api_key, "X-Auth-Email": provider.email}
        else:
            raise DnsProviderError("Cloudflare needs an API token or a global API key with email")

        # Runtime identifier cache
        self._zone_id = ""
        self._record_id = ""

    # ---------------------------------------------------------------------------
    # DNSUpdateHandler implementation
    # ---------------------------------------------------------------------------

    async def get(self) -> str:
        """
        Returns the content of the managed record, or "" if it does not exist.

        Resolves and caches the zone id and record id the first time they
        are needed.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        if not self._zone_id:
            await self._fetch_zone_id()

        if not self._record_id:
            logger.debug("Looking for record %s (%s).", self._fqdn, self._record_type)
            record = await self._find_record()
            if record is None:
                return ""
            self._record_id = record["id"]
            logger.debug("Found DNS record id %s.", self._record_id)
            return record["content"]

        url = f"{_CLOUDFLARE_BASE}/zones/{self._zone_id}/dns_records/{self._record_id}"
        logger.debug("GET %s", url)
        data = await self._request("GET", url, not_found_ok=True)
        if data is None:
            return ""
        return data["result"]["content"]

    async def create(self, address: str) -> None:
        """
        Creates the record in the cached zone.

        Raises:
            MissingIdentifierError: If get() never resolved the zone id.
            DnsProviderError: If the Cloudflare API returns an error.
        """
        if not self._zone_id:
            raise MissingIdentifierError("zone id is empty")

        url = f"{_CLOUDFLARE_BASE}/zones/{self._zone_id}/dns_records"
        logger.debug("Creating %s %s -> %s.", self._record_type, self._fqdn, address)
        created = await self._request("POST", url, json=self._payload(address))
        self._record_id = created["result"]["id"]

    async def update(self, new_address: str) -> None:
        """
        Updates the cached record with a new address.

        Raises:
            MissingIdentifierError: If the zone id or record id is unknown.
            DnsProviderError: If the Cloudflare API returns an error.
        """
        if not self._zone_id:
            raise MissingIdentifierError("zone id is empty")
        if not self._record_id:
            raise MissingIdentifierError("record id is empty")

        url = f"{_CLOUDFLARE_BASE}/zones/{self._zone_id}/dns_records/{self._record_id}"
        logger.debug("Updating %s %s -> %s.", self._record_type, self._fqdn, new_address)
        await self._request("PUT", url, json=self._payload(new_address))

    async def aclose(self) -> None:
        # The HTTP client is shared and owned by the caller.
        return None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _payload(self, address: str) -> dict[str, Any]:
        return {
            "type": self._record_type,
            "name": self._fqdn,
            "content": address,
            "ttl": _DEFAULT_TTL,
            "proxied": False,
            "comment": COMMENT,
        }

    async def _fetch_zone_id(self) -> None:
        logger.debug("Looking for DNS zone %s.", self._domain)
        url = f"{_CLOUDFLARE_BASE}/zones"

        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            params = {"name": self._domain, "page": page + 1, "per_page": 50}
            page_body = await self._request("GET", url, params=params)
            return page_body.get("result", []), self._total_count(page_body)

        zone = await search_pages(fetch, lambda z: z.get("name") == self._domain, page_size=50)
        if zone is None:
            raise DnsProviderError(f"no Cloudflare zone found for {self._domain}")
        self._zone_id = zone["id"]
        logger.debug("Found DNS zone id %s.", self._zone_id)

    async def _find_record(self) -> dict[str, Any] | None:
        url = f"{_CLOUDFLARE_BASE}/zones/{self._zone_id}/dns_records"

        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            params = {
                "type": self._record_type,
                "name": self._fqdn,
                "page": page + 1,
                "per_page": PER_PAGE_COUNT,
            }
            page_body = await self._request("GET", url, params=params)
            return page_body.get("result", []), self._total_count(page_body)

        return await search_pages(
            fetch,
            lambda r: r.get("name") == self._fqdn and r.get("type") == self._record_type,
        )

    @staticmethod
    def _total_count(body: dict[str, Any]) -> int:
        info = body.get("result_info") or {}
        return int(info.get("total_count", len(body.get("result", []))))

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
        Performs one authenticated call and unwraps the v4 envelope.

        Returns:
            The decoded body, or None on HTTP 404 when `not_found_ok`.

        Raises:
            DnsProviderError: On transport failures, HTTP errors, or a
                body whose "success" flag is false.
            OperationTimeoutError: If the call exceeded its deadline.
        """
        try:
            async with deadline(CALL_TIMEOUT_SECONDS, f"Cloudflare {method} {url}"):
                response = await self._client.request(
                    method, url, headers=self._headers, params=params, json=json
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if not_found_ok and exc.response.status_code == 404:
                logger.debug("Cloudflare returned 404 for %s %s.", method, url)
                return None
            raise DnsProviderError(
                f"Cloudflare returned HTTP {exc.response.status_code} for {method} {url}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DnsProviderError(
                f"Network error talking to Cloudflare ({method} {url}): {exc}"
            ) from exc

        envelope: dict[str, Any] = response.json()
        if not envelope.get("success", False):
            raise DnsProviderError(
                f"Cloudflare rejected {method} {url}: {envelope.get('errors', [])}"
            )
        return envelope
