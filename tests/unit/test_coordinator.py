"""Tests for run supersession, cancellation and export."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from dnsbench.coordinator import RunCoordinator, RunSnapshot
from dnsbench.errors import BackendError
from dnsbench.models import BenchmarkParams, DnsResultRecord, RunKind, RunStatus, SpeedParams
from dnsbench.saver import FileSaver


def _dns_params(domain: str = "example.com") -> BenchmarkParams:
    return BenchmarkParams.create(domain, samples=3, timeout_secs=11)


async def _settle_calls(backend, count: int) -> None:
    """Let started tasks reach the backend."""
    for _ in range(10):
        if len(backend.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError("backend was not called")


class RecordingSaver(FileSaver):
    """Saver that keeps what it was asked to write."""

    def __init__(self, fail: bool = False) -> None:
        """Initialize without touching the filesystem."""
        super().__init__(".")
        self.fail = fail
        self.saved: list[tuple[bytes, str, str]] = []

    def _save_blocking(self, data: bytes, suggested_name: str, mime_type: str):
        """Record the call, or fail like a full disk."""
        if self.fail:
            raise OSError("disk full")
        self.saved.append((data, suggested_name, mime_type))
        return suggested_name


async def test_dns_run_publishes_display_list(dns_records) -> None:
    """A completed DNS run exposes raw results and the usable subset."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=dns_records)
    coordinator = RunCoordinator(backend)

    handle = coordinator.start(RunKind.DNS, _dns_params())
    assert coordinator.snapshot.loading is True

    status = await handle.wait()

    snapshot = coordinator.snapshot
    assert status == RunStatus.COMPLETED
    assert snapshot.loading is False
    assert snapshot.error is None
    assert snapshot.results == tuple(dns_records)
    assert snapshot.display == (dns_records[0],)
    backend.run_dns_benchmark.assert_awaited_once()
    params = backend.run_dns_benchmark.await_args.args[0]
    assert (params.samples, params.timeout_secs, params.validate_dnssec) == (3, 11, False)


async def test_download_run_sorted_by_bandwidth(download_records) -> None:
    """Download results are displayed fastest first."""
    backend = AsyncMock()
    backend.perform_download_speed_test = AsyncMock(return_value=download_records)
    coordinator = RunCoordinator(backend)

    handle = coordinator.start(RunKind.DOWNLOAD, SpeedParams.create("https://example.com/f"))
    await handle.wait()

    assert [r.bandwidth_mbps for r in coordinator.snapshot.display] == [80.0, 50.1, 12.3]


async def test_superseded_run_result_is_discarded(controlled_backend, dns_records) -> None:
    """Only the most recently started run is ever shown."""
    coordinator = RunCoordinator(controlled_backend)

    first = coordinator.start(RunKind.DNS, _dns_params("first.example"))
    second = coordinator.start(RunKind.DNS, _dns_params("second.example"))
    await _settle_calls(controlled_backend, 2)

    assert await first.wait() == RunStatus.CANCELLED

    controlled_backend.calls[0][1].set_result(dns_records)
    await first.task

    assert coordinator.snapshot.run_id == second.id
    assert coordinator.snapshot.loading is True
    assert coordinator.snapshot.results is None

    controlled_backend.calls[1][1].set_result(dns_records[:1])
    assert await second.wait() == RunStatus.COMPLETED
    assert coordinator.snapshot.results == (dns_records[0],)
    assert coordinator.snapshot.target == "second.example"


async def test_superseded_run_error_is_suppressed(controlled_backend) -> None:
    """A stale failure never replaces the active run's state."""
    coordinator = RunCoordinator(controlled_backend)

    first = coordinator.start(RunKind.DNS, _dns_params())
    second = coordinator.start(RunKind.DNS, _dns_params())
    await _settle_calls(controlled_backend, 2)

    controlled_backend.calls[0][1].set_exception(BackendError("boom"))
    await first.task

    assert coordinator.snapshot.error is None
    assert coordinator.snapshot.run_id == second.id


async def test_cancel_clears_loading_and_ignores_late_result(
    controlled_backend, dns_records
) -> None:
    """Cancel is immediate; the late resolution changes nothing."""
    coordinator = RunCoordinator(controlled_backend)
    handle = coordinator.start(RunKind.DNS, _dns_params())
    await _settle_calls(controlled_backend, 1)

    coordinator.cancel()

    assert coordinator.snapshot.loading is False
    assert coordinator.active_id is None
    assert await handle.wait() == RunStatus.CANCELLED

    controlled_backend.calls[0][1].set_result(dns_records)
    await handle.task

    assert coordinator.snapshot.results is None
    assert handle.status == RunStatus.CANCELLED


async def test_cancel_without_run_is_noop() -> None:
    """Cancelling with nothing running publishes nothing."""
    coordinator = RunCoordinator(AsyncMock())
    seen: list[RunSnapshot] = []
    coordinator.subscribe(seen.append)

    coordinator.cancel()

    assert seen == []


async def test_backend_failure_clears_results(dns_records) -> None:
    """A failure shows one message and drops the previous results."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(
        side_effect=[dns_records, BackendError("No DNS servers configured")]
    )
    coordinator = RunCoordinator(backend)

    await coordinator.start(RunKind.DNS, _dns_params()).wait()
    assert coordinator.snapshot.results is not None

    status = await coordinator.start(RunKind.DNS, _dns_params()).wait()

    assert status == RunStatus.FAILED
    assert coordinator.snapshot.error == "No DNS servers configured"
    assert coordinator.snapshot.results is None
    assert coordinator.snapshot.display == ()


async def test_malformed_results_fail_the_run() -> None:
    """Records that cannot be filtered fail the run instead of hanging it."""
    malformed = DnsResultRecord.from_dict(
        {"server_address": "1.1.1.1", "query_successful": True, "success_percent": None}
    )
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=[malformed])
    coordinator = RunCoordinator(backend)

    status = await asyncio.wait_for(coordinator.start(RunKind.DNS, _dns_params()).wait(), 1)

    assert status == RunStatus.FAILED
    assert coordinator.loading is False
    assert "not supported" in coordinator.snapshot.error
    assert coordinator.snapshot.results is None
    assert coordinator.snapshot.display == ()


async def test_new_run_clears_previous_error() -> None:
    """Starting again resets the error message."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(side_effect=[BackendError("boom"), []])
    coordinator = RunCoordinator(backend)

    await coordinator.start(RunKind.DNS, _dns_params()).wait()
    handle = coordinator.start(RunKind.DNS, _dns_params())

    assert coordinator.snapshot.error is None
    await handle.wait()
    assert coordinator.snapshot.results == ()


async def test_start_rejects_mismatched_params() -> None:
    """Each kind takes its own parameter type."""
    coordinator = RunCoordinator(AsyncMock())

    with pytest.raises(TypeError):
        coordinator.start(RunKind.DOWNLOAD, _dns_params())


async def test_listener_failure_does_not_break_publication(dns_records) -> None:
    """A raising listener is skipped; others still receive snapshots."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=dns_records)
    coordinator = RunCoordinator(backend)
    seen: list[RunSnapshot] = []

    def broken(_snapshot: RunSnapshot) -> None:
        raise RuntimeError("listener bug")

    coordinator.subscribe(broken)
    coordinator.subscribe(seen.append)
    await coordinator.start(RunKind.DNS, _dns_params()).wait()

    assert [s.loading for s in seen] == [True, False]

    coordinator.unsubscribe(seen.append)
    await coordinator.start(RunKind.DNS, _dns_params()).wait()
    assert len(seen) == 2


async def test_export_raw_results_in_input_order(dns_records) -> None:
    """Export writes every raw record, unusable ones included."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=dns_records)
    coordinator = RunCoordinator(backend)
    await coordinator.start(RunKind.DNS, _dns_params()).wait()
    saver = RecordingSaver()

    ok = await coordinator.export(saver)

    assert ok is True
    data, name, mime_type = saver.saved[0]
    lines = data.decode("utf-8").split("\r\n")
    assert lines[1].startswith("8.8.8.8,true,100.0,12.4,")
    assert lines[2].startswith("10.0.0.1,false,0.0,,")
    assert name.startswith("dns-benchmark-example.com-")
    assert name.endswith(".csv")
    assert mime_type == "text/csv"


async def test_export_json(dns_records) -> None:
    """JSON export uses the .json name and MIME type."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=dns_records)
    coordinator = RunCoordinator(backend)
    await coordinator.start(RunKind.DNS, _dns_params()).wait()
    saver = RecordingSaver()

    assert await coordinator.export(saver, fmt="json") is True
    assert saver.saved[0][1].endswith(".json")
    assert saver.saved[0][2] == "application/json"


async def test_export_without_results_returns_false() -> None:
    """Nothing to export is reported as False."""
    coordinator = RunCoordinator(AsyncMock())

    assert await coordinator.export(RecordingSaver()) is False


async def test_export_failure_leaves_snapshot_untouched(dns_records) -> None:
    """A failed save is non-fatal for the displayed results."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=dns_records)
    coordinator = RunCoordinator(backend)
    await coordinator.start(RunKind.DNS, _dns_params()).wait()
    before = coordinator.snapshot

    ok = await coordinator.export(RecordingSaver(fail=True))

    assert ok is False
    assert coordinator.snapshot is before


async def test_aclose_cancels_outstanding_tasks(controlled_backend) -> None:
    """Shutdown tears down in-flight backend calls."""
    coordinator = RunCoordinator(controlled_backend)
    handle = coordinator.start(RunKind.DNS, _dns_params())
    await _settle_calls(controlled_backend, 1)

    await coordinator.aclose()

    assert handle.task.cancelled()
    assert await handle.wait() == RunStatus.CANCELLED


async def test_run_ids_increase() -> None:
    """Every start gets a new, larger id."""
    backend = AsyncMock()
    backend.run_dns_benchmark = AsyncMock(return_value=[])
    coordinator = RunCoordinator(backend)

    first = coordinator.start(RunKind.DNS, _dns_params())
    second = coordinator.start(RunKind.DNS, _dns_params())
    await second.wait()

    assert second.id > first.id
    await coordinator.aclose()
