"""
providers/alicloud_client.py

Responsibility: Implements the DNSUpdateHandler protocol for one record using
the AliCloud DNS RPC API (2015-01-09).
Does NOT: detect addresses, decide between create and update, or schedule jobs.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError, MissingIdentifierError
from models import AliCloudProvider, RecordSpec
from providers.dns_provider import PER_PAGE_COUNT, search_pages
from providers.signing import aliyun_common_params, aliyun_rpc_signature
from timeouts import CALL_TIMEOUT_SECONDS, deadline

logger = logging.getLogger(__name__)

_API_VERSION = "2015-01-09"
_DEFAULT_TTL = 600

# Error codes meaning a cached record id no longer points at a record
_RECORD_GONE_CODES = frozenset({"InvalidRR.NoExist", "DomainRecordNotBelongToUser"})


class AliCloudApiError(DnsProviderError):
    """An AliCloud RPC call returned an error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"AliCloud API error {code}: {message}")
        self.code = code


class AliCloudClient:
    """
    Implements DNSUpdateHandler for AliCloud DNS.

    AliCloud addresses records by domain name plus RR (host label, "@" for
    the apex), so only the record id needs caching.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        spec: RecordSpec,
        provider: AliCloudProvider,
    ) -> None:
        self._client = http_client
        self._domain = spec.domain
        self._rr = spec.subdomain
        self._record_type = spec.record_type
        self._line = provider.line or "default"
        self._access_key_id = provider.access_key_id
        self._access_key_secret = provider.access_key_secret

        if provider.region_id:
            self._endpoint = f"https://alidns.{provider.region_id}.aliyuncs.com/"
        else:
            self._endpoint = "https://alidns.aliyuncs.com/"

        self._record_id = ""

    # ---------------------------------------------------------------------------
    # DNSUpdateHandler implementation
    # ---------------------------------------------------------------------------

    async def get(self) -> str:
        if self._record_id:
            logger.debug("Record id %s present, getting record info.", self._record_id)
            try:
                body = await self._call("DescribeDomainRecordInfo", {"RecordId": self._record_id})
            except AliCloudApiError as exc:
                if exc.code in _RECORD_GONE_CODES:
                    logger.debug("Record %s no longer exists.", self._record_id)
                    return ""
                raise
            return body.get("Value", "")

        logger.debug("No record id present, searching for %s in %s.", self._rr, self._domain)

        async def fetch(page: int) -> tuple[list[dict[str, Any]], int]:
            body = await self._call(
                "DescribeDomainRecords",
                {
                    "DomainName": self._domain,
                    "RRKeyWord": self._rr,
                    "Type": self._record_type,
                    "Line": self._line,
                    "PageNumber": str(page + 1),
                    "PageSize": str(PER_PAGE_COUNT),
                },
            )
            records = body.get("DomainRecords", {}).get("Record", [])
            return records, int(body.get("TotalCount", len(records)))

        record = await search_pages(
            fetch,
            lambda r: r.get("RR") == self._rr
            and r.get("DomainName") == self._domain
            and r.get("Type") == self._record_type,
        )
        if record is None:
            logger.debug("No record with RR %s found.", self._rr)
            return ""

        self._record_id = record["RecordId"]
        logger.debug("Got existing DNS record id %s.", self._record_id)
        return record.get("Value", "")

    async def create(self, address: str) -> None:
        logger.debug("Creating record for address %s.", address)
        body = await self._call(
            "AddDomainRecord",
            {
                "DomainName": self._domain,
                "RR": self._rr,
                "Type": self._record_type,
                "Value": address,
                "Line": self._line,
                "TTL": str(_DEFAULT_TTL),
            },
        )
        self._record_id = body["RecordId"]
        logger.debug("Created DNS record id %s.", self._record_id)

    async def update(self, new_address: str) -> None:
        if not self._record_id:
            raise MissingIdentifierError("record id is empty")

        logger.debug("Updating DNS record %s to %s.", self._record_id, new_address)
        await self._call(
            "UpdateDomainRecord",
            {
                "RecordId": self._record_id,
                "RR": self._rr,
                "Type": self._record_type,
                "Value": new_address,
                "Line": self._line,
                "TTL": str(_DEFAULT_TTL),
            },
        )

    async def aclose(self) -> None:
        return None

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _call(self, action: str, params: dict[str, str]) -> dict[str, Any]:
        """
        Sends one signed RPC action and returns the decoded body.

        Raises:
            AliCloudApiError: If the response carries an error code.
            DnsProviderError: On transport failures or undecodable responses.
            OperationTimeoutError: If the call exceeded its deadline.
        """
        query = {
            **aliyun_common_params(self._access_key_id),
            "Action": action,
            "Version": _API_VERSION,
            **params,
        }
        query["Signature"] = aliyun_rpc_signature(query, self._access_key_secret)

        try:
            async with deadline(CALL_TIMEOUT_SECONDS, f"AliCloud {action}"):
                response = await self._client.get(self._endpoint, params=query)
        except httpx.RequestError as exc:
            raise DnsProviderError(f"Network error calling AliCloud {action}: {exc}") from exc

        try:
            body: dict[str, Any] = response.json()
        except ValueError as exc:
            raise DnsProviderError(
                f"AliCloud {action} returned status {response.status_code} with a non-JSON body"
            ) from exc

        if response.is_error or "Code" in body:
            raise AliCloudApiError(
                str(body.get("Code", response.status_code)), str(body.get("Message", ""))
            )
        return body
