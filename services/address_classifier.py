"""
services/address_classifier.py

Responsibility: Pure functions that decide whether a textual address is a
usable IPv4/IPv6 address and whether it is public or local.
Does NOT: enumerate interfaces, make network calls, or apply any policy.
"""

from __future__ import annotations

import ipaddress

from models import NetworkStack

# Addresses that can never be published: unspecified, loopback, link-local,
# multicast and broadcast.
_IPV4_INVALID_BLOCKS = tuple(
    ipaddress.IPv4Network(block)
    for block in (
        "0.0.0.0/8",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "224.0.0.0/4",
        "255.255.255.255/32",
    )
)

_IPV4_PRIVATE_BLOCKS = tuple(
    ipaddress.IPv4Network(block)
    for block in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "198.18.0.0/15",
    )
)

_IPV6_INVALID_BLOCKS = tuple(
    ipaddress.IPv6Network(block)
    for block in (
        "::/128",
        "::1/128",
        "fe80::/10",
        "ff00::/8",
    )
)

# Unique local addresses (ULA)
_IPV6_PRIVATE_BLOCKS = (ipaddress.IPv6Network("fc00::/7"),)


def _parse_v4(address: str) -> ipaddress.IPv4Address | None:
    try:
        return ipaddress.IPv4Address(address)
    except ValueError:
        return None


def _parse_v6(address: str) -> ipaddress.IPv6Address | None:
    try:
        ip = ipaddress.IPv6Address(address)
    except ValueError:
        return None
    # Scoped addresses ("fe80::1%eth0") only make sense on one host.
    if ip.scope_id is not None:
        return None
    return ip


def is_valid_v4(address: str) -> bool:
    """
    Returns True if `address` is a strict dotted-quad IPv4 address that can
    be published (not unspecified, loopback, link-local, multicast or
    broadcast).
    """
    ip = _parse_v4(address)
    if ip is None:
        return False
    return not any(ip in block for block in _IPV4_INVALID_BLOCKS)


def is_valid_v6(address: str) -> bool:
    """
    Returns True if `address` is an IPv6 address that can be published (not
    unspecified, loopback, link-local or multicast).
    """
    ip = _parse_v6(address)
    if ip is None:
        return False
    return not any(ip in block for block in _IPV6_INVALID_BLOCKS)


def is_valid_for_stack(address: str, stack: NetworkStack) -> bool:
    """Returns True if `address` is valid for the given address family."""
    if stack is NetworkStack.IPV6:
        return is_valid_v6(address)
    return is_valid_v4(address)


def is_private(address: str) -> bool:
    """
    Returns True if `address` lies in a private / non-globally-routable range
    (RFC 1918, benchmarking 198.18/15, or IPv6 ULA).

    Unparseable input is reported as not private; callers are expected to
    check validity first.
    """
    v4 = _parse_v4(address)
    if v4 is not None:
        return any(v4 in block for block in _IPV4_PRIVATE_BLOCKS)
    v6 = _parse_v6(address)
    if v6 is not None:
        return any(v6 in block for block in _IPV6_PRIVATE_BLOCKS)
    return False
