"""Guarded heap snapshot writer.

take_snapshot() is called from timer and signal contexts, so it never raises:
every failure path ends in a log line.
"""

import time
from pathlib import Path
from typing import Callable, Optional

import structlog

from ..models import SamplerConfig
from .heap import HeapIntrospector

logger = structlog.get_logger(__name__, component="snapshot")

SNAPSHOT_SUFFIX = ".heapsnapshot"


def snapshot_path(output_dir: Path, timestamp: float) -> Path:
    """Build ``<output_dir>/heap-<unix millis>.heapsnapshot`` for a wall-clock time."""
    return Path(output_dir) / f"heap-{int(timestamp * 1000)}{SNAPSHOT_SUFFIX}"


def take_snapshot(
    config: SamplerConfig,
    introspector: HeapIntrospector,
    *,
    clock: Callable[[], float] = time.time,
) -> Optional[Path]:
    """Write a heap snapshot unless heap usage is above the safe threshold.

    Args:
        config: Sampler configuration (threshold and output directory).
        introspector: Source of heap statistics and snapshot writer.
        clock: Wall-clock source in seconds since the epoch.

    Returns:
        Path of the written snapshot, or None if skipped or failed.
    """
    try:
        stats = introspector.read_stats()
    except Exception as exc:  # noqa: BLE001
        logger.error(f"Snapshot failed: {exc}", error=str(exc), stage="read_stats")
        return None

    heap_used_mb = stats.used_mb
    logger.info(f"Current heap used: {heap_used_mb:.1f} MB", heap_used_mb=round(heap_used_mb, 1))

    threshold_mb = config.safe_heap_threshold_mb
    if heap_used_mb > threshold_mb:
        logger.error(
            f"Snapshot skipped: heap {heap_used_mb:.1f} MB > safe {threshold_mb:.1f} MB",
            heap_used_mb=round(heap_used_mb, 1),
            threshold_mb=threshold_mb,
        )
        return None

    path = snapshot_path(config.output_dir, clock())
    try:
        introspector.write_snapshot(path)
    except Exception as exc:  # noqa: BLE001
        logger.error(f"Snapshot failed: {exc}", error=str(exc), path=str(path))
        return None

    logger.info(
        f"Snapshot written: {path} (used {heap_used_mb:.1f} MB)",
        path=str(path),
        heap_used_mb=round(heap_used_mb, 1),
    )
    return path
