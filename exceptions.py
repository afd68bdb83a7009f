"""
exceptions.py

Responsibility: Defines all custom exception classes used across the application.
Does NOT: contain business logic, logging, or HTTP handling.
"""

from __future__ import annotations


class DdnsError(Exception):
    """
    Base class for every error raised by ddns-keeper itself.

    The InstanceManager catches this (and only this family, plus unexpected
    exceptions it logs) at the job boundary so one failing record never
    stops the others.
    """


class ConfigLoadError(DdnsError):
    """
    Raised by the config loader when the configuration file is missing,
    unparseable, or fails validation (duplicate names, unresolved
    references, missing required fields).
    """


class AddressDetectionError(DdnsError):
    """
    Raised by an AddressDetector when the address to publish cannot be
    determined.

    This may occur due to network connectivity issues, an unexpected response
    from a third-party lookup service, an address that is invalid for the
    configured stack, or a local address rejected by the LocalAddressPolicy.
    """


class DnsProviderError(DdnsError):
    """
    Raised by any DNSUpdateHandler implementation when a DNS backend call fails.

    Includes a human-readable message describing the failure. Callers
    (typically DdnsInstance) let it propagate to abort the current pass.
    """


class MissingIdentifierError(DnsProviderError):
    """
    Raised when create() or update() is called before the zone, domain or
    record identifier it needs has been resolved by a previous get() or
    create().
    """


class OperationTimeoutError(DdnsError, TimeoutError):
    """
    Raised when a single detector or backend call exceeds its deadline.
    """
