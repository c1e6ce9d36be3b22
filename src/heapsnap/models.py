"""Sampler data models.

Provides the immutable SamplerConfig handed to every trigger and the
ephemeral HeapStats reading consumed by each snapshot attempt.
"""

import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

BYTES_PER_MB = 1024 * 1024


def default_output_dir() -> Path:
    """Return the process root directory (directory of the __main__ script).

    Falls back to the current working directory for interactive sessions and
    ``python -c`` invocations where __main__ has no file.
    """
    main_module = sys.modules.get("__main__")
    main_file = getattr(main_module, "__file__", None)
    if main_file:
        return Path(main_file).resolve().parent
    return Path.cwd()


def _positive_finite(value: float) -> bool:
    return math.isfinite(value) and value > 0


@dataclass(frozen=True)
class SamplerConfig:
    """Process-wide sampler settings, built once at startup."""

    snapshot_interval_hours: float = 6.0
    safe_heap_threshold_mb: float = 250.0
    output_dir: Path = field(default_factory=default_output_dir)
    trace_frames: int = 25

    def __post_init__(self):
        if not _positive_finite(self.snapshot_interval_hours):
            raise ValueError(
                f"snapshot_interval_hours must be a positive finite number, got {self.snapshot_interval_hours}"
            )
        if not _positive_finite(self.safe_heap_threshold_mb):
            raise ValueError(
                f"safe_heap_threshold_mb must be a positive finite number, got {self.safe_heap_threshold_mb}"
            )
        if self.trace_frames < 1:
            raise ValueError(f"trace_frames must be at least 1, got {self.trace_frames}")

    @property
    def snapshot_interval_seconds(self) -> float:
        return self.snapshot_interval_hours * 60 * 60


@dataclass(frozen=True)
class HeapStats:
    """A single read of current heap usage."""

    used_bytes: int  # Bytes currently traced by tracemalloc
    peak_bytes: int
    rss_bytes: Optional[int] = None  # Process RSS, None if unavailable

    @property
    def used_mb(self) -> float:
        return self.used_bytes / BYTES_PER_MB

    @property
    def rss_mb(self) -> Optional[float]:
        if self.rss_bytes is None:
            return None
        return self.rss_bytes / BYTES_PER_MB
