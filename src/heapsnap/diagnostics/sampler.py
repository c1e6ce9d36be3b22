"""Background heap snapshot sampler.

Runs inside the host's asyncio event loop and owns four independent triggers:

- SIGUSR2: take a snapshot now
- every ``snapshot_interval_hours``: take a snapshot
- every hour: log current heap usage (no snapshot)
- once, 60 seconds after start: remind the operator the sampler is active

Usage
-----
1. Start the host with the sampler enabled::

       sampler = HeapSnapshotSampler.from_config_manager(initialize_config())
       await sampler.start()

   tracemalloc is started on ``start()`` if the host has not started it.
   Only allocations made after tracing starts are counted, so a sampler
   started late under-reports heap usage and the threshold check is looser
   than it looks. Run the host with ``python -X tracemalloc=25`` (or set
   PYTHONTRACEMALLOC=25) to trace from the first allocation.
   Tracing costs memory and CPU; enable the sampler only while hunting a leak.

2. Watch the hourly ``Heap used: ... MB`` lines (or the process in htop).

3. Trigger a snapshot while heap usage is still low, or just before an
   expected spike::

       ps aux | grep <host>
       kill -USR2 <PID>

   The log shows ``Snapshot written: <dir>/heap-<millis>.heapsnapshot``.
   Make sure the PID is right: SIGUSR2 terminates processes that do not
   handle it. If the write fails (MemoryError, disk full), lower
   ``snapshot.safe_heap_threshold_mb`` and retry.

4. Copy the snapshot off the machine if needed and inspect it::

       import tracemalloc
       snap = tracemalloc.Snapshot.load("heap-1700000000000.heapsnapshot")
       for stat in snap.statistics("traceback")[:10]:
           print(stat)
           print("\\n".join(stat.traceback.format()))

   Take two or three snapshots (startup, mid-run, high usage) and diff them
   with ``new.compare_to(old, "lineno")``. Look for lists, dicts and caches
   that only grow, callbacks never unregistered, and whole-file reads.
"""

import asyncio
import signal
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import structlog

from ..config.manager import ConfigManager
from ..models import BYTES_PER_MB, SamplerConfig
from .heap import HeapIntrospector, TracemallocIntrospector
from .snapshot import take_snapshot

logger = structlog.get_logger(__name__, component="snapshot")

USAGE_REPORT_INTERVAL_SECONDS = 60 * 60
STARTUP_REMINDER_DELAY_SECONDS = 60

SIGNAL_REQUEST = "signal"


class HeapSnapshotSampler:
    """Owns the snapshot triggers for one process."""

    def __init__(
        self,
        config: SamplerConfig,
        introspector: Optional[HeapIntrospector] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        usage_report_interval_seconds: float = USAGE_REPORT_INTERVAL_SECONDS,
        startup_reminder_delay_seconds: float = STARTUP_REMINDER_DELAY_SECONDS,
    ):
        self.config = config
        self.introspector = introspector or TracemallocIntrospector(frames=config.trace_frames)
        self.usage_report_interval_seconds = usage_report_interval_seconds
        self.startup_reminder_delay_seconds = startup_reminder_delay_seconds
        self._sleep = sleep
        self._clock = clock
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._requests: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._signal_installed = False
        self._previous_signal_handler = None

    @classmethod
    def from_config_manager(cls, manager: ConfigManager, **kwargs) -> "HeapSnapshotSampler":
        return cls(manager.to_sampler_config(), **kwargs)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def signal_installed(self) -> bool:
        return self._signal_installed

    async def start(self) -> None:
        """Install the signal handler and spawn the timer tasks."""
        if self._running:
            return
        self._running = True
        self._loop = asyncio.get_running_loop()
        self._requests = asyncio.Queue()

        self.introspector.ensure_tracing()

        self._install_signal_handler()
        self._tasks = [
            asyncio.create_task(self._consume_requests(), name="heapsnap-requests"),
            asyncio.create_task(self._periodic_snapshot_loop(), name="heapsnap-periodic"),
            asyncio.create_task(self._usage_report_loop(), name="heapsnap-usage"),
            asyncio.create_task(self._startup_reminder(), name="heapsnap-reminder"),
        ]
        logger.info(
            "snapshot_sampler_started",
            interval_hours=self.config.snapshot_interval_hours,
            safe_heap_threshold_mb=self.config.safe_heap_threshold_mb,
            output_dir=str(self.config.output_dir),
            signal_installed=self._signal_installed,
        )

    async def stop(self) -> None:
        """Remove the signal handler and cancel all timer tasks."""
        if not self._running:
            return
        self._running = False
        self._remove_signal_handler()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._requests = None
        logger.info("snapshot_sampler_stopped")

    def take_snapshot(self) -> Optional[Path]:
        """Run one guarded snapshot attempt with this sampler's config."""
        return take_snapshot(self.config, self.introspector, clock=self._clock)

    def request_snapshot(self, reason: str = SIGNAL_REQUEST) -> None:
        """Queue a snapshot for the request consumer task.

        Safe to call from a signal handler registered with the event loop.
        """
        if self._requests is None:
            logger.warning("snapshot_request_ignored", reason=reason, running=False)
            return
        self._requests.put_nowait(reason)

    def report_usage(self) -> None:
        """Log current heap usage without taking a snapshot."""
        stats = self.introspector.read_stats()
        rss_mb = stats.rss_mb
        logger.info(
            f"Heap used: {stats.used_mb:.1f} MB",
            heap_used_mb=round(stats.used_mb, 1),
            heap_peak_mb=round(stats.peak_bytes / BYTES_PER_MB, 1),
            rss_mb=round(rss_mb, 1) if rss_mb is not None else None,
        )

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    def _install_signal_handler(self) -> None:
        sig = getattr(signal, "SIGUSR2", None)
        if sig is None:
            logger.warning("snapshot_signal_unavailable", signal="SIGUSR2")
            return
        previous = signal.getsignal(sig)
        try:
            self._loop.add_signal_handler(sig, self._on_signal)
        except (NotImplementedError, RuntimeError, ValueError) as exc:
            logger.warning("snapshot_signal_not_installed", signal="SIGUSR2", error=str(exc))
            return
        self._previous_signal_handler = previous
        self._signal_installed = True

    def _remove_signal_handler(self) -> None:
        if not self._signal_installed:
            return
        self._loop.remove_signal_handler(signal.SIGUSR2)
        # remove_signal_handler resets SIGUSR2 to SIG_DFL
        previous = self._previous_signal_handler
        if previous is not None:
            signal.signal(signal.SIGUSR2, previous)
            logger.debug("snapshot_signal_restored", handler=repr(previous))
        self._previous_signal_handler = None
        self._signal_installed = False

    def _on_signal(self) -> None:
        self.request_snapshot(SIGNAL_REQUEST)

    # ------------------------------------------------------------------
    # Trigger tasks
    # ------------------------------------------------------------------

    async def _consume_requests(self) -> None:
        requests = self._requests
        while True:
            reason = await requests.get()
            try:
                if reason == SIGNAL_REQUEST:
                    logger.info("SIGUSR2 received, taking snapshot")
                else:
                    logger.info("Snapshot requested, taking snapshot", reason=reason)
                self.take_snapshot()
            except Exception as exc:  # noqa: BLE001
                logger.error("snapshot_request_failed", error=str(exc), exc_info=True)
            finally:
                requests.task_done()

    async def _periodic_snapshot_loop(self) -> None:
        while True:
            await self._sleep(self.config.snapshot_interval_seconds)
            try:
                logger.info("Periodic snapshot check")
                self.take_snapshot()
            except Exception as exc:  # noqa: BLE001
                logger.error("periodic_snapshot_failed", error=str(exc), exc_info=True)

    async def _usage_report_loop(self) -> None:
        while True:
            await self._sleep(self.usage_report_interval_seconds)
            try:
                self.report_usage()
            except Exception as exc:  # noqa: BLE001
                logger.error("usage_report_failed", error=str(exc), exc_info=True)

    async def _startup_reminder(self) -> None:
        await self._sleep(self.startup_reminder_delay_seconds)
        logger.warning(
            "Snapshot sampler is running - read the usage instructions in "
            "heapsnap.diagnostics.sampler"
        )
