"""
providers/factory.py

Responsibility: Builds the DNSUpdateHandler for a RecordSpec from its
provider variant.
Does NOT: validate configuration or make any network call.
"""

from __future__ import annotations

import httpx

from models import (
    AliCloudProvider,
    CloudflareProvider,
    DnsPodProvider,
    HuaweiCloudProvider,
    JdCloudProvider,
    RecordSpec,
    Rfc2136Provider,
)
from providers.alicloud_client import AliCloudClient
from providers.cloudflare_client import CloudflareClient
from providers.dns_provider import DNSUpdateHandler
from providers.dnspod_client import DnsPodClient
from providers.huawei_client import HuaweiCloudClient
from providers.jdcloud_client import JdCloudClient
from providers.rfc2136_client import Rfc2136Client


def build_handler(spec: RecordSpec, http_client: httpx.AsyncClient) -> DNSUpdateHandler:
    """
    Creates the handler that manages `spec`'s record on its backend.

    Args:
        spec: The record to manage.
        http_client: Shared client used by the REST-based backends.

    Returns:
        A fresh handler with an empty identifier cache.
    """
    provider = spec.provider
    match provider:
        case CloudflareProvider():
            return CloudflareClient(http_client, spec, provider)
        case AliCloudProvider():
            return AliCloudClient(http_client, spec, provider)
        case DnsPodProvider():
            return DnsPodClient(http_client, spec, provider)
        case HuaweiCloudProvider():
            return HuaweiCloudClient(http_client, spec, provider)
        case JdCloudProvider():
            return JdCloudClient(http_client, spec, provider)
        case Rfc2136Provider():
            return Rfc2136Client(spec, provider)
        case _:
            raise TypeError(f"unsupported provider config: {type(provider).__name__}")
