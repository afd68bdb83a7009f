"""
scheduler.py

Responsibility: Owns every DdnsInstance of a configuration, registers one
APScheduler cron job per instance, and drives start-up and bounded graceful
shutdown.
Does NOT: contain reconciliation logic, read configuration files, or make
HTTP calls directly. Those are delegated to DdnsInstance and its
collaborators.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from exceptions import ConfigLoadError
from logger import RecordLoggerAdapter
from models import RecordSpec
from services.ddns_instance import DdnsInstance

logger = logging.getLogger(__name__)

# Seconds shutdown waits for cancelled passes to unwind
DEFAULT_GRACE_PERIOD = 10.0


def create_scheduler() -> AsyncIOScheduler:
    """
    Creates an AsyncIOScheduler whose jobs never overlap.

    max_instances=1 makes the scheduler skip a tick while the previous pass
    of the same record is still running; coalesce=True collapses missed
    ticks into a single run.

    Returns:
        A configured but not yet started AsyncIOScheduler.
    """
    return AsyncIOScheduler(job_defaults={"max_instances": 1, "coalesce": True})


# ---------------------------------------------------------------------------
# Scheduler job
# ---------------------------------------------------------------------------


class InstanceManager:
    """
    Runs all configured records on their own cron schedules.

    Each job executes as its own asyncio task, so records are reconciled in
    parallel. A failed pass is logged with its record name and swallowed:
    one broken record never stops the others, and the next tick is the retry.

    Collaborators:
        - AsyncIOScheduler: fires one cron job per record
        - DdnsInstance: performs the actual reconciliation pass
    """

    def __init__(
        self,
        specs: list[RecordSpec],
        http_client: httpx.AsyncClient,
        scheduler: AsyncIOScheduler | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        """
        Builds one DdnsInstance per spec.

        Args:
            specs: The loaded record specs.
            http_client: Shared client handed to every detector and handler.
            scheduler: Scheduler to register jobs on; a new one is created
                by default.
            grace_period: Default seconds shutdown() waits for cancelled
                passes to unwind.

        Raises:
            ConfigLoadError: If `specs` is empty or two specs share a name.
        """
        if not specs:
            raise ConfigLoadError("no DDNS records configured")

        self._instances: dict[str, DdnsInstance] = {}
        for spec in specs:
            if spec.name in self._instances:
                raise ConfigLoadError(f"duplicate DDNS record name: {spec.name}")
            self._instances[spec.name] = DdnsInstance.from_spec(spec, http_client)

        self._scheduler = scheduler or create_scheduler()
        self._grace_period = grace_period
        self._inflight: set[asyncio.Task[Any]] = set()
        self._closed = asyncio.Event()
        self._shutting_down = False

    @property
    def instances(self) -> dict[str, DdnsInstance]:
        return dict(self._instances)

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    def start(self) -> list[str]:
        """
        Registers one cron job per instance, then starts the scheduler.

        Must be called from within the running event loop.

        Returns:
            The registered job ids (one per record name).
        """
        job_ids: list[str] = []
        for name, instance in self._instances.items():
            job = self._scheduler.add_job(
                self._run_instance,
                trigger=CronTrigger.from_crontab(instance.spec.cron),
                id=name,
                name=name,
                args=[instance],
                replace_existing=True,
            )
            logger.info("Scheduled record %s with cron '%s' (job id %s).", name, instance.spec.cron, job.id)
            job_ids.append(job.id)

        self._scheduler.start()
        logger.info("Instance manager started with %d record(s).", len(job_ids))
        return job_ids

    async def shutdown(self, grace_period: float | None = None) -> None:
        """
        Stops scheduling and cancels in-flight passes.

        New ticks are suppressed and every in-flight pass is cancelled at
        once. The grace period bounds how long shutdown waits for those
        passes to unwind; stragglers are abandoned after it. Every handler
        is then closed and wait_closed() is released.

        Args:
            grace_period: Overrides the manager's default grace period.
        """
        if self._shutting_down:
            await self._closed.wait()
            return
        self._shutting_down = True

        grace = self._grace_period if grace_period is None else grace_period
        logger.info("Shutting down instance manager (grace period %.1fs).", grace)

        if self._scheduler.running:
            self._scheduler.pause()

        pending = {task for task in self._inflight if not task.done()}
        if pending:
            logger.info("Cancelling %d in-flight pass(es).", len(pending))
            for task in pending:
                task.cancel()
            _, still_running = await asyncio.wait(pending, timeout=grace)
            if still_running:
                logger.warning(
                    "%d pass(es) did not stop within the grace period; continuing shutdown.",
                    len(still_running),
                )

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        for name, instance in self._instances.items():
            try:
                await instance.aclose()
            except Exception:
                logger.exception("Failed to close handler for record %s.", name)

        self._closed.set()
        logger.info("Instance manager stopped.")

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Starts the manager, waits for `stop_event`, then shuts down.

        Args:
            stop_event: Shared shutdown signal, set by whatever supervises us.
        """
        self.start()
        await stop_event.wait()
        await self.shutdown()

    async def wait_closed(self) -> None:
        """Blocks until shutdown() has fully completed."""
        await self._closed.wait()

    def status(self) -> list[dict[str, Any]]:
        """
        Summarises every managed record for the health endpoint.

        Returns:
            One dict per record with name, fqdn, type, state and next run time.
        """
        records: list[dict[str, Any]] = []
        for name, instance in self._instances.items():
            job = self._scheduler.get_job(name) if self._scheduler.running else None
            next_run = getattr(job, "next_run_time", None) if job else None
            records.append(
                {
                    "name": name,
                    "fqdn": instance.spec.fqdn,
                    "type": instance.spec.record_type,
                    "state": instance.state.value,
                    "next_run": next_run.isoformat() if next_run else None,
                }
            )
        return records

    # ---------------------------------------------------------------------------
    # Job body
    # ---------------------------------------------------------------------------

    async def _run_instance(self, instance: DdnsInstance) -> None:
        """
        APScheduler job: one reconciliation pass for one record.

        Never raises; failures are logged so the scheduler keeps running.
        A pass cancelled by shutdown ends quietly after a warning, so the
        scheduler does not report it as a job error.
        """
        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)

        log = RecordLoggerAdapter(logger, instance.name)
        try:
            outcome = await instance.do_update()
            log.info("Pass finished: %s.", outcome.value)
        except asyncio.CancelledError:
            log.warning("Pass cancelled.")
        except Exception as exc:
            log.error("Pass failed: %s", exc)
        finally:
            if task is not None:
                self._inflight.discard(task)
