"""
services/ddns_instance.py

Responsibility: Runs one reconciliation pass for one record: detect the
desired address, read the published one, then create, update or skip.
Does NOT: schedule passes, retry failures, or persist anything between passes.
"""

from __future__ import annotations

import logging
from enum import Enum

import httpx

from logger import RecordLoggerAdapter
from models import RecordSpec
from providers.dns_provider import DNSUpdateHandler
from providers.factory import build_handler
from services.ip_service import AddressDetector, build_detector

logger = logging.getLogger(__name__)


class InstanceState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    READING = "reading"
    CREATING = "creating"
    UPDATING = "updating"
    SKIPPING = "skipping"
    DONE = "done"
    FAILED = "failed"


class UpdateOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class DdnsInstance:
    """
    Reconciles a single DNS record with the address this host should publish.

    One instance exists per RecordSpec for the lifetime of the process. The
    detector and handler are owned exclusively by it; the handler's
    identifier cache is the only state carried from one pass to the next.

    Collaborators:
        - AddressDetector: produces the desired address
        - DNSUpdateHandler: reads and writes the record on the backend
    """

    def __init__(
        self,
        spec: RecordSpec,
        detector: AddressDetector,
        handler: DNSUpdateHandler,
    ) -> None:
        self._spec = spec
        self._detector = detector
        self._handler = handler
        self._state = InstanceState.IDLE
        self._log = RecordLoggerAdapter(logger, spec.name)

    @classmethod
    def from_spec(cls, spec: RecordSpec, http_client: httpx.AsyncClient) -> DdnsInstance:
        """
        Builds an instance with the detector and handler `spec` asks for.

        Args:
            spec: The record to reconcile.
            http_client: Shared client for third-party lookups and REST backends.

        Returns:
            A ready-to-run DdnsInstance in the IDLE state.
        """
        detector = build_detector(spec.detection, spec.stack, http_client)
        handler = build_handler(spec, http_client)
        return cls(spec, detector, handler)

    @property
    def spec(self) -> RecordSpec:
        return self._spec

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def state(self) -> InstanceState:
        return self._state

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def do_update(self) -> UpdateOutcome:
        """
        Runs one reconciliation pass.

        Returns:
            What the pass did to the record.

        Raises:
            AddressDetectionError: If the desired address cannot be determined.
            DnsProviderError: If reading or writing the record fails.
            OperationTimeoutError: If any single call exceeded its deadline.
        """
        try:
            self._state = InstanceState.DETECTING
            try:
                desired = await self._detector.detect()
            except Exception as exc:
                self._log.error("Failed to detect address: %s", exc)
                raise

            self._state = InstanceState.READING
            current = await self._handler.get()

            if not current:
                self._state = InstanceState.CREATING
                self._log.info("Record %s does not exist, creating it with %s.", self._spec.fqdn, desired)
                await self._handler.create(desired)
                outcome = UpdateOutcome.CREATED
            elif current != desired:
                self._state = InstanceState.UPDATING
                self._log.info("Address changed from %s to %s, updating record.", current, desired)
                await self._handler.update(desired)
                outcome = UpdateOutcome.UPDATED
            else:
                self._state = InstanceState.SKIPPING
                self._log.debug("Address %s unchanged, nothing to do.", current)
                outcome = UpdateOutcome.UNCHANGED
        except BaseException:
            self._state = InstanceState.FAILED
            raise

        self._state = InstanceState.DONE
        return outcome

    async def aclose(self) -> None:
        await self._handler.aclose()
