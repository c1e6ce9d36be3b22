"""Heap diagnostics: introspection, guarded snapshots and the background sampler.

snapshot: take_snapshot (threshold-gated, never raises)
heap: HeapIntrospector protocol and the tracemalloc implementation
sampler: HeapSnapshotSampler (timers + SIGUSR2)
"""

from .heap import HeapIntrospector, TracemallocIntrospector
from .sampler import HeapSnapshotSampler
from .snapshot import snapshot_path, take_snapshot

__all__ = [
    "HeapIntrospector",
    "HeapSnapshotSampler",
    "TracemallocIntrospector",
    "snapshot_path",
    "take_snapshot",
]
