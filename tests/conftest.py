"""Shared fixtures for heapsnap tests."""

from pathlib import Path

import pytest

from heapsnap.models import BYTES_PER_MB, HeapStats, SamplerConfig


class FakeIntrospector:
    """In-memory HeapIntrospector recording every snapshot write."""

    def __init__(self, used_mb: float = 100.0, write_error: Exception | None = None):
        self.used_mb = used_mb
        self.write_error = write_error
        self.read_error: Exception | None = None
        self.writes: list[Path] = []
        self.tracing_calls = 0

    def ensure_tracing(self) -> None:
        self.tracing_calls += 1

    def read_stats(self) -> HeapStats:
        if self.read_error is not None:
            error, self.read_error = self.read_error, None
            raise error
        used = int(self.used_mb * BYTES_PER_MB)
        return HeapStats(used_bytes=used, peak_bytes=used, rss_bytes=used * 2)

    def write_snapshot(self, path: Path) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(path)


@pytest.fixture
def introspector():
    return FakeIntrospector()


@pytest.fixture
def sampler_config(tmp_path):
    return SamplerConfig(
        snapshot_interval_hours=6,
        safe_heap_threshold_mb=250,
        output_dir=tmp_path,
    )
