"""
providers/dnspod_client.py

Responsibility: Implements the DNSUpdateHandler protocol for one record using
Tencent Cloud DNSPod (API 3.0, version 2021-03-23).
Does NOT: detect addresses, decide between create and update, or schedule jobs.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError, MissingIdentifierError
from models import DnsPodProvider, RecordSpec
from providers.dns_provider import COMMENT, PER_PAGE_COUNT, search_pages
from providers.signing import TencentCloudAuth
from timeouts import CALL_TIMEOUT_SECONDS, deadline

logger = logging.getLogger(__name__)

_ENDPOINT = "https://dnspod.tencentcloudapi.com/"
_SERVICE = "dnspod"
_API_VERSION = "2021-03-23"
_DEFAULT_TTL = 600

_NO_RECORDS = "ResourceNotFound.NoDataOfRecord"
_RECORD_ID_INVALID = "InvalidParameter.RecordIdInvalid"


class DnsPodApiError(DnsProviderError):
    """A DNSPod action returned Response.Error."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"DNSPod API error {code}: {message}")
        self.code = code


class DnsPodClient:
    """
    Implements DNSUpdateHandler for DNSPod.

    The numeric domain id and record id are resolved on first need and
    cached for the lifetime of the handler.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        spec: RecordSpec,
        provider: DnsPodProvider,
    ) -> None:
        self._client = http_client
        self._domain = spec.domain
        self._subdomain = spec.subdomain
        self._record_type = spec.record_type
        self._line_id = provider.line_id or "0"
        self._region = provider.region
        self._auth = TencentCloudAuth(provider.secret_id, provider.secret_key, _SERVICE)

        self._domain_id: int | None = None
        self._record_id: int | None = None

    # ---------------------------------------------------------------------------
    # DNSUpdateHandler implementation
    # ---------------------------------------------------------------------------

    async def get(self) -> str:
        if self._domain_id is None:
            logger.debug("No domain id present, searching for %s.", self._domain)
            await self._find_domain_id()

        if self._record_id is None:
            logger.debug("No record id present, searching for %s.", self._subdomain)
            return await self._find_record()

        try:
            body = await self._call(
                "DescribeRecord",
                {"Domain": self._domain, "DomainId": self._domain_id, "RecordId": self._record_id},
            )
        except DnsPodApiError as exc:
            if exc.code == _RECORD_ID_INVALID:
                logger.debug("Record %s no longer exists.", self._record_id)
                return ""
            raise
        return body["RecordInfo"]["Value"]

    async def create(self, address: str) -> None:
        if self._domain_id is None:
            raise MissingIdentifierError("domain id is empty")

        logger.debug("Creating DNS record for %s.%s.", self._subdomain, self._domain)
        body = await self._call(
            "CreateRecord",
            {
                "Domain": self._domain,
                "DomainId": self._domain_id,
                "SubDomain": self._subdomain,
                "RecordType": self._record_type,
                "RecordLine": "",
                "RecordLineId": self._line_id,
                "Value": address,
                "TTL": _DEFAULT_TTL,
                "Remark": COMMENT,
            },
        )
        self._record_id = body["RecordId"]

    async def update(self, new_address: str) -> None:
        if self._domain_id is None:
            raise MissingIdentifierError("domain id is empty")
        if self._record_id is None:
            raise MissingIdentifierError("record id is empty")

        logger.debug("Updating DNS record for %s.%s.", self._subdomain, self._domain)
        await self._call(
            "ModifyRecord",
            {
                "Domain": self._domain,
                "DomainId": self._domain_id,
                "RecordId": self._record_id,
                "SubDomain": self._subdomain,
                "RecordType": self._record_type,
                "RecordLine": "",
                "RecordLineId": self._line_id,
                "Value": new_address,
                "TTL": _DEFAULT_TTL,
                "Remark": COMMENT,
            },
        )

    async def aclose(self) -> None:
        return None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _find_domain_id(self) -> None:
        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            body = await self._call(
                "DescribeDomainList",
                {"Keyword": self._domain, "Offset": page * PER_PAGE_COUNT, "Limit": PER_PAGE_COUNT},
            )
            total = int(body.get("DomainCountInfo", {}).get("DomainTotal", 0))
            return body.get("DomainList") or [], total

        domain = await search_pages(fetch, lambda d: d.get("Name") == self._domain)
        if domain is None:
            raise DnsProviderError(f"domain {self._domain} does not exist in the account")
        self._domain_id = int(domain["DomainId"])
        logger.debug("Got domain id %s.", self._domain_id)

    async def _find_record(self) -> str:
        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            try:
                body = await self._call(
                    "DescribeRecordList",
                    {
                        "Domain": self._domain,
                        "DomainId": self._domain_id,
                        "Subdomain": self._subdomain,
                        "RecordType": self._record_type,
                        "RecordLineId": self._line_id,
                        "Offset": page * PER_PAGE_COUNT,
                        "Limit": PER_PAGE_COUNT,
                    },
                )
            except DnsPodApiError as exc:
                if exc.code == _NO_RECORDS:
                    return [], 0
                raise
            total = int(body.get("RecordCountInfo", {}).get("SubdomainCount", 0))
            return body.get("RecordList") or [], total

        record = await search_pages(
            fetch,
            lambda r: r.get("Name") == self._subdomain and r.get("Type") == self._record_type,
        )
        if record is None:
            return ""
        self._record_id = int(record["RecordId"])
        logger.debug("Got record id %s.", self._record_id)
        return record["Value"]

    async def _call(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Sends one signed API 3.0 action and returns the Response object.

        Raises:
            DnsPodApiError: If the response contains Response.Error.
            DnsProviderError: On transport failures or HTTP errors.
            OperationTimeoutError: If the call exceeded its deadline.
        """
        headers = {"X-TC-Action": action, "X-TC-Version": _API_VERSION}
        if self._region:
            headers["X-TC-Region"] = self._region

        try:
            async with deadline(CALL_TIMEOUT_SECONDS, f"DNSPod {action}"):
                response = await self._client.post(
                    _ENDPOINT, json=payload, headers=headers, auth=self._auth
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DnsProviderError(
                f"DNSPod API error {exc.response.status_code} for {action}: {exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DnsProviderError(f"Network error calling DNSPod {action}: {exc}") from exc

        result: dict[str, Any] = response.json().get("Response", {})
        error = result.get("Error")
        if error:
            raise DnsPodApiError(error.get("Code", ""), error.get("Message", ""))
        return result
