"""
services/ip_service.py

Responsibility: Determines the address that should currently be published
for a record, either from a local network interface or from a third-party
lookup service.
Does NOT: talk to DNS backends, decide whether a record needs updating, or
schedule anything.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from typing import Any, Protocol, runtime_checkable

import httpx
import jq
import psutil

from exceptions import AddressDetectionError
from models import (
    DetectionConfig,
    InterfaceDetection,
    LocalAddressPolicy,
    NetworkStack,
    ThirdPartyDetection,
)
from services.address_classifier import is_private, is_valid_for_stack
from timeouts import deadline

logger = logging.getLogger(__name__)

# Third-party lookups are expected to answer quickly.
_REQUEST_TIMEOUT_SECONDS = 3.0

# Interface enumeration is local, but still bounded.
_INTERFACE_TIMEOUT_SECONDS = 5.0


# ---------------------------------------------------------------------------
# Abstract interface: all detection strategies implement this contract
# ---------------------------------------------------------------------------


@runtime_checkable
class AddressDetector(Protocol):
    """
    Produces the address that should be published for one record.

    Implementations must be cancellable mid-flight: cancelling the awaiting
    task aborts any in-progress network call.
    """

    async def detect(self) -> str:
        """
        Returns the address to publish.

        Raises:
            AddressDetectionError: If no acceptable address can be determined.
            OperationTimeoutError: If the detection exceeded its deadline.
        """
        ...


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def select_address(
    public: list[str],
    local: list[str],
    policy: LocalAddressPolicy,
) -> str:
    """
    Picks the address to publish from already-classified candidates.

    The first candidate of each category wins; candidates keep the order in
    which they were discovered.

    Args:
        public: Valid, publicly routable candidates.
        local: Valid, private / ULA candidates.
        policy: How local candidates are treated.

    Returns:
        The selected address.

    Raises:
        AddressDetectionError: If no candidate satisfies the policy.
    """
    if policy is LocalAddressPolicy.PREFER:
        if local:
            return local[0]
        if public:
            return public[0]
        raise AddressDetectionError("no valid address found")

    if policy is LocalAddressPolicy.ALLOW:
        if public:
            return public[0]
        if local:
            return local[0]
        raise AddressDetectionError("no valid address found")

    if not public:
        raise AddressDetectionError("no public address found")
    return public[0]


# ---------------------------------------------------------------------------
# Interface strategy
# ---------------------------------------------------------------------------


class InterfaceAddressDetector:
    """
    Reads the address assigned to a named local network interface.

    Interface enumeration uses psutil and is blocking, so it is offloaded
    with asyncio.to_thread to keep the event loop free.
    """

    def __init__(self, config: InterfaceDetection, stack: NetworkStack) -> None:
        self._interface = config.interface_name
        self._policy = config.local_address_policy
        self._stack = stack
        logger.debug("Watching network interface %s (%s).", self._interface, stack.value)

    async def detect(self) -> str:
        async with deadline(_INTERFACE_TIMEOUT_SECONDS, f"reading interface {self._interface}"):
            addresses = await asyncio.to_thread(self._interface_addresses)

        public: list[str] = []
        local: list[str] = []
        for address in addresses:
            if not is_valid_for_stack(address, self._stack):
                logger.debug("Ignoring address %s on %s.", address, self._interface)
                continue
            if is_private(address):
                logger.debug("Saving local address %s.", address)
                local.append(address)
            else:
                logger.debug("Saving public address %s.", address)
                public.append(address)

        address = select_address(public, local, self._policy)
        logger.debug("Address selected: %s", address)
        return address

    def _interface_addresses(self) -> list[str]:
        """
        Returns the textual addresses on the configured interface, in the order
        the OS reports them.

        Raises:
            AddressDetectionError: If the interface does not exist or is down.
        """
        family = socket.AF_INET6 if self._stack is NetworkStack.IPV6 else socket.AF_INET
        try:
            stats = psutil.net_if_stats()
            all_addrs = psutil.net_if_addrs()
        except OSError as exc:
            raise AddressDetectionError(f"could not enumerate network interfaces: {exc}") from exc

        if self._interface not in stats or self._interface not in all_addrs:
            raise AddressDetectionError(f"network interface {self._interface} not found")
        if not stats[self._interface].isup:
            raise AddressDetectionError(f"network interface {self._interface} is down")

        addresses: list[str] = []
        for snic in all_addrs[self._interface]:
            if snic.family != family:
                continue
            # Strip "/prefix" and "%zone" decorations some platforms add.
            addresses.append(snic.address.split("/")[0].split("%")[0])
        return addresses


# ---------------------------------------------------------------------------
# Third-party strategy
# ---------------------------------------------------------------------------


class ThirdPartyAddressDetector:
    """
    Asks a third-party HTTP service which address this host has.

    Plain-text responses are used verbatim (trimmed). JSON responses, or any
    response when a JSON path is configured, are evaluated with the jq
    expression in `json_path`, which must yield exactly one string.

    Collaborators:
        - httpx.AsyncClient: injected; must be kept alive externally
    """

    def __init__(
        self,
        config: ThirdPartyDetection,
        stack: NetworkStack,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._stack = stack
        self._client = http_client
        self._auth: tuple[str, str] | None = None
        if config.username:
            self._auth = (config.username, config.password or "")

    async def detect(self) -> str:
        address = await self._request_address()

        if not is_valid_for_stack(address, self._stack):
            raise AddressDetectionError(f"invalid {self._stack.value} address: {address!r}")

        if is_private(address) and self._config.local_address_policy is LocalAddressPolicy.IGNORE:
            raise AddressDetectionError(f"local address is ignored: {address}")

        logger.debug("Third-party service reported %s.", address)
        return address

    async def _request_address(self) -> str:
        url = self._config.url
        logger.debug("Requesting address from %s", url)
        try:
            async with deadline(_REQUEST_TIMEOUT_SECONDS, f"address lookup at {url}"):
                response = await self._client.get(
                    url,
                    params=self._config.params or None,
                    headers=self._config.headers or None,
                    auth=self._auth,
                    timeout=_REQUEST_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AddressDetectionError(
                f"address service returned status {exc.response.status_code}."
            ) from exc
        except httpx.RequestError as exc:
            raise AddressDetectionError(f"could not reach address service ({url}): {exc}") from exc

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type or self._config.json_path:
            if not self._config.json_path:
                raise AddressDetectionError("response is JSON but no jsonPath is configured")
            return self._extract(response.text, self._config.json_path)

        return response.text.strip()

    @staticmethod
    def _extract(body: str, json_path: str) -> str:
        """
        Evaluates a jq expression against a JSON document.

        Raises:
            AddressDetectionError: If the body is not JSON, the expression is
                invalid, or it does not yield exactly one string.
        """
        if not body.strip():
            raise AddressDetectionError("response is empty")
        try:
            document: Any = json.loads(body)
        except json.JSONDecodeError as exc:
            raise AddressDetectionError(f"malformed JSON response: {exc}") from exc

        try:
            values = jq.compile(json_path).input_value(document).all()
        except ValueError as exc:
            raise AddressDetectionError(f"jsonPath {json_path!r} failed: {exc}") from exc

        if len(values) != 1:
            raise AddressDetectionError(
                f"jsonPath {json_path!r} must yield exactly one value, got {len(values)}"
            )
        value = values[0]
        if not isinstance(value, str):
            raise AddressDetectionError(f"jsonPath {json_path!r} did not yield a string: {value!r}")
        return value.strip()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_detector(
    detection: DetectionConfig,
    stack: NetworkStack,
    http_client: httpx.AsyncClient,
) -> AddressDetector:
    """
    Creates the AddressDetector matching a detection variant.

    Args:
        detection: The resolved detection configuration.
        stack: Address family the record is published for.
        http_client: Shared client for third-party lookups.

    Returns:
        A ready-to-use AddressDetector.
    """
    match detection:
        case InterfaceDetection():
            return InterfaceAddressDetector(detection, stack)
        case ThirdPartyDetection():
            return ThirdPartyAddressDetector(detection, stack, http_client)
        case _:
            raise TypeError(f"unsupported detection config: {type(detection).__name__}")
