"""Runtime heap introspection backed by tracemalloc.

Heap usage is the number of bytes currently traced by tracemalloc; snapshots
are tracemalloc.Snapshot dumps that can be reopened with
``tracemalloc.Snapshot.load(path)``.

tracemalloc only sees allocations made after tracing starts. When the sampler
is what starts it, heap usage under-reports memory allocated earlier; start
tracing early (``python -X tracemalloc=25`` or PYTHONTRACEMALLOC) to count it.
"""

import os
import tracemalloc
from pathlib import Path
from typing import Optional, Protocol

import psutil
import structlog

from ..models import HeapStats

logger = structlog.get_logger(__name__)

# Process handle cached at module level to avoid repeated PID lookups
_process: Optional[psutil.Process] = None


def _get_process() -> psutil.Process:
    """Return a cached psutil.Process handle for this process."""
    global _process
    if _process is None:
        _process = psutil.Process(os.getpid())
    return _process


def read_rss_bytes() -> Optional[int]:
    """Return resident set size of this process, or None if psutil cannot read it."""
    try:
        return int(_get_process().memory_info().rss)
    except psutil.Error as exc:
        logger.debug("rss_read_failed", error=str(exc))
        return None


class HeapIntrospector(Protocol):
    """Source of heap statistics and heap snapshots."""

    def ensure_tracing(self) -> None:
        ...

    def read_stats(self) -> HeapStats:
        ...

    def write_snapshot(self, path: Path) -> None:
        ...


class TracemallocIntrospector:
    """HeapIntrospector using the standard tracemalloc module."""

    def __init__(self, frames: int = 25):
        self.frames = frames

    def ensure_tracing(self) -> None:
        """Start tracemalloc if the host has not already done so."""
        if not tracemalloc.is_tracing():
            tracemalloc.start(self.frames)
            # Allocations made before this point are not traced
            logger.info(
                "tracemalloc_started",
                frames=self.frames,
                heap_used_counts="allocations since tracing started",
            )

    def read_stats(self) -> HeapStats:
        if tracemalloc.is_tracing():
            used, peak = tracemalloc.get_traced_memory()
        else:
            used, peak = 0, 0
        return HeapStats(used_bytes=int(used), peak_bytes=int(peak), rss_bytes=read_rss_bytes())

    def write_snapshot(self, path: Path) -> None:
        """Dump all traced allocations to ``path``.

        Raises:
            RuntimeError: If tracemalloc is not tracing
            OSError: If the file cannot be written
        """
        snapshot = tracemalloc.take_snapshot()
        snapshot.dump(str(path))
