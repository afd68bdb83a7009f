"""
providers/jdcloud_client.py

Responsibility: Implements the DNSUpdateHandler protocol for one record using
the JD Cloud domainservice v2 API.
Does NOT: detect addresses, decide between create and update, or schedule jobs.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError, MissingIdentifierError
from models import JdCloudProvider, RecordSpec
from providers.dns_provider import search_pages
from providers.signing import JdCloudAuth
from timeouts import CALL_TIMEOUT_SECONDS, deadline

logger = logging.getLogger(__name__)

_SERVICE = "domainservice"
_DEFAULT_TTL = 120

# domainservice rejects larger pages
_PAGE_SIZE = 50


class JdCloudClient:
    """
    Implements DNSUpdateHandler for JD Cloud DNS.

    The domain id is cached once found. The record itself is searched on
    every get(), which also refreshes the cached record id.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        spec: RecordSpec,
        provider: JdCloudProvider,
    ) -> None:
        self._client = http_client
        self._domain = spec.domain
        self._host_record = spec.subdomain
        self._record_type = spec.record_type
        self._view_id = provider.view_id
        self._base = (
            f"https://{_SERVICE}.jdcloud-api.com/v2/regions/{provider.region_id}/domain"
        )
        self._auth = JdCloudAuth(
            provider.access_key, provider.secret_key, provider.region_id, _SERVICE
        )

        self._domain_id: int | None = None
        self._record_id: int | None = None

    # ---------------------------------------------------------------------------
    # DNSUpdateHandler implementation
    # ---------------------------------------------------------------------------

    async def get(self) -> str:
        if self._domain_id is None:
            logger.debug("Domain id is empty, searching for %s.", self._domain)
            await self._find_domain_id()

        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            result = await self._request(
                "GET",
                f"{self._base}/{self._domain_id}/ResourceRecord",
                params={"pageNumber": page + 1, "pageSize": _PAGE_SIZE, "search": self._host_record},
            )
            records = result.get("dataList") or []
            return records, int(result.get("totalCount", len(records)))

        record = await search_pages(
            fetch,
            lambda r: r.get("hostRecord") == self._host_record and r.get("type") == self._record_type,
            page_size=_PAGE_SIZE,
        )
        if record is None:
            return ""

        self._record_id = int(record["id"])
        logger.debug("Got record id %s.", self._record_id)
        return record.get("hostValue", "")

    async def create(self, address: str) -> None:
        if self._domain_id is None:
            raise MissingIdentifierError("domain id is empty")

        result = await self._request(
            "POST",
            f"{self._base}/{self._domain_id}/ResourceRecord",
            json={
                "req": {
                    "hostRecord": self._host_record,
                    "hostValue": address,
                    "type": self._record_type,
                    "viewValue": self._view_id,
                    "ttl": _DEFAULT_TTL,
                }
            },
        )
        self._record_id = int(result["dataList"]["id"])

    async def update(self, new_address: str) -> None:
        if self._domain_id is None:
            raise MissingIdentifierError("domain id is empty")
        if self._record_id is None:
            raise MissingIdentifierError("record id is empty")

        await self._request(
            "PUT",
            f"{self._base}/{self._domain_id}/ResourceRecord/{self._record_id}",
            json={
                "req": {
                    "domainName": self._domain,
                    "hostRecord": self._host_record,
                    "hostValue": new_address,
                    "type": self._record_type,
                    "viewValue": self._view_id,
                    "ttl": _DEFAULT_TTL,
                }
            },
        )

    async def aclose(self) -> None:
        return None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _find_domain_id(self) -> None:
        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            result = await self._request(
                "GET",
                self._base,
                params={"pageNumber": page + 1, "pageSize": _PAGE_SIZE, "domainName": self._domain},
            )
            domains = result.get("dataList") or []
            return domains, int(result.get("totalCount", len(domains)))

        domain = await search_pages(
            fetch, lambda d: d.get("domainName") == self._domain, page_size=_PAGE_SIZE
        )
        if domain is None:
            raise DnsProviderError(f"domain {self._domain} does not exist")
        self._domain_id = int(domain["id"])
        logger.debug("Got domain id %s.", self._domain_id)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Sends one signed request and returns the `result` object.

        Raises:
            DnsProviderError: On transport failures, HTTP errors, or a
                populated `error` object in the response.
            OperationTimeoutError: If the call exceeded its deadline.
        """
        try:
            async with deadline(CALL_TIMEOUT_SECONDS, f"JD Cloud {method} {url}"):
                response = await self._client.request(
                    method, url, params=params, json=json, auth=self._auth
                )
        except httpx.RequestError as exc:
            raise DnsProviderError(
                f"Network error calling JD Cloud API ({method} {url}): {exc}"
            ) from exc

        try:
            body: dict[str, Any] = response.json()
        except ValueError as exc:
            raise DnsProviderError(
                f"JD Cloud API returned status {response.status_code} with a non-JSON body"
            ) from exc

        error = body.get("error")
        if error and error.get("code"):
            raise DnsProviderError(
                f"JD Cloud API error {error.get('code')} for {method} {url}: {error.get('message', '')}"
            )
        if response.is_error:
            raise DnsProviderError(
                f"JD Cloud API error {response.status_code} for {method} {url}: {response.text}"
            )
        return body.get("result") or {}
