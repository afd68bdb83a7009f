"""
models.py

Responsibility: Defines the immutable value objects the reconciliation core
works with: RecordSpec, the detection and provider sum types, and the enums
they use.
Does NOT: parse configuration files, hold runtime identifier caches, or make
network calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

# Subdomain value that stands for the zone apex (the bare domain).
APEX_MARKER = "@"


class NetworkStack(str, Enum):
    """Address family a record is published for."""

    IPV4 = "IPv4"
    IPV6 = "IPv6"

    @property
    def record_type(self) -> str:
        return "A" if self is NetworkStack.IPV4 else "AAAA"


class LocalAddressPolicy(str, Enum):
    """
    How detectors treat private / non-globally-routable addresses.

    Ignore: never publish a local address.
    Allow:  publish a local address only when no public one exists.
    Prefer: publish a local address whenever one exists.
    """

    IGNORE = "Ignore"
    ALLOW = "Allow"
    PREFER = "Prefer"


# ---------------------------------------------------------------------------
# Detection variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InterfaceDetection:
    """Read the address from a local network interface."""

    interface_name: str
    local_address_policy: LocalAddressPolicy = LocalAddressPolicy.IGNORE


@dataclass(frozen=True)
class ThirdPartyDetection:
    """Ask a third-party HTTP service which address we have."""

    url: str
    json_path: str | None = None
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    username: str | None = None
    password: str | None = None
    local_address_policy: LocalAddressPolicy = LocalAddressPolicy.IGNORE


DetectionConfig = Union[InterfaceDetection, ThirdPartyDetection]


# ---------------------------------------------------------------------------
# Provider variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CloudflareProvider:
    # Either api_token, or global_api_key together with email.
    api_token: str | None = None
    global_api_key: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class AliCloudProvider:
    access_key_id: str
    access_key_secret: str
    region_id: str = ""
    line: str = "default"


@dataclass(frozen=True)
class DnsPodProvider:
    secret_id: str
    secret_key: str
    region: str = ""
    line_id: str = "0"


@dataclass(frozen=True)
class HuaweiCloudProvider:
    access_key: str
    secret_access_key: str
    region: str


@dataclass(frozen=True)
class JdCloudProvider:
    access_key: str
    secret_key: str
    region_id: str = "cn-north-1"
    view_id: int = -1


@dataclass(frozen=True)
class TsigKey:
    """Shared-secret transaction signature key (RFC 8945)."""

    key_name: str
    secret: str
    algorithm: str = "hmac-sha256"


@dataclass(frozen=True)
class GssTsigCredentials:
    """Kerberos credentials used to negotiate a GSS-TSIG context (RFC 3645)."""

    domain: str
    username: str
    password: str


@dataclass(frozen=True)
class Rfc2136Provider:
    address: str
    port: int = 53
    use_tcp: bool = False
    tsig: TsigKey | None = None
    gss_tsig: GssTsigCredentials | None = None


ProviderConfig = Union[
    CloudflareProvider,
    AliCloudProvider,
    DnsPodProvider,
    HuaweiCloudProvider,
    JdCloudProvider,
    Rfc2136Provider,
]


# ---------------------------------------------------------------------------
# Record spec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordSpec:
    """
    Identity of one reconciliation target.

    Built once by the config loader and read by exactly one DdnsInstance
    for the lifetime of the process.
    """

    # Unique key within a loaded configuration
    name: str

    # Registered domain (zone), e.g. "example.com"
    domain: str

    # Host label(s) inside the zone, or APEX_MARKER for the zone apex
    subdomain: str

    stack: NetworkStack

    # Five-field crontab expression, e.g. "*/5 * * * *"
    cron: str

    provider: ProviderConfig
    detection: DetectionConfig

    @property
    def record_type(self) -> str:
        return self.stack.record_type

    @property
    def is_apex(self) -> bool:
        return self.subdomain == APEX_MARKER

    @property
    def fqdn(self) -> str:
        """Fully-qualified name without trailing dot, e.g. "home.example.com"."""
        if self.is_apex:
            return self.domain
        return f"{self.subdomain}.{self.domain}"
