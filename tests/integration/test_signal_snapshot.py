"""Integration tests: real SIGUSR2 delivery and real tracemalloc snapshots."""

import asyncio
import os
import signal
import tracemalloc

import pytest
from structlog.testing import capture_logs

from heapsnap.diagnostics.sampler import HeapSnapshotSampler
from heapsnap.models import SamplerConfig

pytestmark = pytest.mark.skipif(not hasattr(signal, "SIGUSR2"), reason="SIGUSR2 not available")


@pytest.fixture
def restore_tracing():
    was_tracing = tracemalloc.is_tracing()
    yield
    if not was_tracing and tracemalloc.is_tracing():
        tracemalloc.stop()


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


async def _send_sigusr2(sampler: HeapSnapshotSampler) -> None:
    if not sampler.signal_installed:
        pytest.skip("event loop could not install a SIGUSR2 handler")
    os.kill(os.getpid(), signal.SIGUSR2)


@pytest.mark.asyncio
async def test_sigusr2_writes_loadable_snapshot(tmp_path, restore_tracing):
    config = SamplerConfig(safe_heap_threshold_mb=100_000, output_dir=tmp_path)
    sampler = HeapSnapshotSampler(config)
    await sampler.start()
    try:
        with capture_logs() as logs:
            await _send_sigusr2(sampler)
            await _wait_for(lambda: any(tmp_path.glob("heap-*.heapsnapshot")))
            await sampler._requests.join()  # noqa: SLF001
    finally:
        await sampler.stop()

    files = list(tmp_path.glob("heap-*.heapsnapshot"))
    assert len(files) == 1
    assert isinstance(tracemalloc.Snapshot.load(str(files[0])), tracemalloc.Snapshot)

    events = [entry["event"] for entry in logs]
    assert events[0] == "SIGUSR2 received, taking snapshot"
    assert events[1].startswith("Current heap used: ")
    assert events[2].startswith(f"Snapshot written: {files[0]} (used ")


@pytest.mark.asyncio
async def test_sigusr2_under_pressure_skips_snapshot(tmp_path, restore_tracing):
    config = SamplerConfig(safe_heap_threshold_mb=0.001, output_dir=tmp_path)
    sampler = HeapSnapshotSampler(config)
    await sampler.start()
    ballast = bytearray(2 * 1024 * 1024)
    try:
        with capture_logs() as logs:
            await _send_sigusr2(sampler)
            await _wait_for(lambda: any(e["event"].startswith("Snapshot skipped") for e in logs))
    finally:
        await sampler.stop()
        del ballast

    assert list(tmp_path.glob("*.heapsnapshot")) == []
    skipped = [e for e in logs if e["event"].startswith("Snapshot skipped")]
    assert skipped[0]["log_level"] == "error"
    assert "> safe 0.0 MB" in skipped[0]["event"]


@pytest.mark.asyncio
async def test_signal_handler_removed_on_stop(tmp_path, restore_tracing):
    sampler = HeapSnapshotSampler(SamplerConfig(output_dir=tmp_path))
    await sampler.start()
    installed = sampler.signal_installed
    await sampler.stop()

    if not installed:
        pytest.skip("event loop could not install a SIGUSR2 handler")
    assert not sampler.signal_installed
    loop = asyncio.get_running_loop()
    assert loop.remove_signal_handler(signal.SIGUSR2) is False


@pytest.mark.asyncio
async def test_stop_restores_host_signal_handler(tmp_path, restore_tracing):
    received = []

    def host_handler(signum, frame):
        received.append(signum)

    original = signal.signal(signal.SIGUSR2, host_handler)
    try:
        sampler = HeapSnapshotSampler(SamplerConfig(output_dir=tmp_path))
        await sampler.start()
        installed = sampler.signal_installed
        await sampler.stop()
        if not installed:
            pytest.skip("event loop could not install a SIGUSR2 handler")

        assert signal.getsignal(signal.SIGUSR2) is host_handler

        os.kill(os.getpid(), signal.SIGUSR2)
        await _wait_for(lambda: received)
        assert received == [signal.SIGUSR2]
        assert list(tmp_path.glob("*.heapsnapshot")) == []
    finally:
        signal.signal(signal.SIGUSR2, original)
