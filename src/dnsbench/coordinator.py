"""
Run coordinator for DNS Bench.

Owns run identity and the single "active run" slot. Every start
allocates a new id and makes it the active one; when a backend call
resolves, its outcome is published only if its id is still active.
Older runs (superseded or cancelled) may still finish in the
background, but their results and errors are dropped.

All state changes happen on the event loop thread, so the id check and
the publication that follows it need no locking.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from .backend import MeasurementBackend
from .filtering import display_dns, sort_download
from .models import (
    BenchmarkParams,
    BenchmarkRun,
    ResultRecord,
    RunKind,
    RunParams,
    RunStatus,
    SpeedParams,
)
from .output import CSV_MIME_TYPE, JSON_MIME_TYPE, CSVOutput, JSONOutput, export_filename
from .saver import FileSaver

logger = logging.getLogger(__name__)


def _display_list(kind: RunKind, results) -> tuple[ResultRecord, ...]:
    """Filtered and sorted view of raw results; may raise on malformed records."""
    if kind == RunKind.DNS:
        return tuple(display_dns(results))
    return tuple(sort_download(results))


@dataclass(frozen=True)
class RunSnapshot:
    """Everything a front end renders, published as one immutable value."""
    run_id: Optional[int] = None
    kind: Optional[RunKind] = None
    params: Optional[RunParams] = None
    loading: bool = False
    error: Optional[str] = None
    # Raw backend records, in backend order (None until a run completes)
    results: Optional[tuple[ResultRecord, ...]] = None
    # Filtered and sorted records for display
    display: tuple[ResultRecord, ...] = ()

    @property
    def target(self) -> Optional[str]:
        if isinstance(self.params, BenchmarkParams):
            return self.params.domain_or_ip
        if isinstance(self.params, SpeedParams):
            return self.params.url
        return None


SnapshotListener = Callable[[RunSnapshot], None]


class RunHandle:
    """Caller's view of a started run."""

    def __init__(self, run: BenchmarkRun, task: asyncio.Task):
        self.run = run
        self.task = task
        self._settled = asyncio.Event()

    @property
    def id(self) -> int:
        return self.run.id

    @property
    def status(self) -> RunStatus:
        return self.run.status

    def _settle(self, status: RunStatus) -> None:
        self.run.finish(status)
        self._settled.set()

    async def wait(self) -> RunStatus:
        """
        Wait until the run reaches a terminal status.

        A cancelled or superseded run settles immediately, even though
        its backend call may still be in flight.
        """
        await self._settled.wait()
        return self.run.status


class RunCoordinator:
    """
    Starts measurement runs and publishes the active run's outcome.

    Front ends read `snapshot` or subscribe to changes; they never see
    a partially updated result list.
    """

    def __init__(self, backend: MeasurementBackend):
        self.backend = backend
        self._ids = itertools.count(1)
        self._active_id: Optional[int] = None
        self._handles: dict[int, RunHandle] = {}
        self._snapshot = RunSnapshot()
        self._listeners: list[SnapshotListener] = []

    @property
    def active_id(self) -> Optional[int]:
        return self._active_id

    @property
    def snapshot(self) -> RunSnapshot:
        return self._snapshot

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    def subscribe(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, snapshot: RunSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")

    def _settle(self, run_id: int, status: RunStatus) -> None:
        handle = self._handles.get(run_id)
        if handle is not None:
            handle._settle(status)

    def start(self, kind: RunKind, params: RunParams) -> RunHandle:
        """
        Start a run and make it the active one.

        Must be called from a running event loop. Returns immediately;
        the backend call runs as a task.

        Args:
            kind: DNS benchmark or download speed test
            params: Validated parameters matching the kind

        Returns:
            RunHandle for the new run
        """
        expected = BenchmarkParams if kind == RunKind.DNS else SpeedParams
        if not isinstance(params, expected):
            raise TypeError(f"{kind.value} runs take {expected.__name__}")

        run = BenchmarkRun(id=next(self._ids), kind=kind, params=params)

        previous = self._active_id
        if previous is not None:
            logger.debug("Run %d superseded by run %d", previous, run.id)
            self._settle(previous, RunStatus.CANCELLED)

        self._active_id = run.id
        run.status = RunStatus.RUNNING
        self._publish(RunSnapshot(run_id=run.id, kind=kind, params=params, loading=True))

        task = asyncio.create_task(self._execute(run), name=f"benchmark-run-{run.id}")
        handle = RunHandle(run, task)
        self._handles[run.id] = handle
        task.add_done_callback(lambda _t, run_id=run.id: self._on_task_done(run_id))

        logger.debug("Started %s run %d", kind.value, run.id)
        return handle

    async def _execute(self, run: BenchmarkRun) -> None:
        try:
            if run.kind == RunKind.DNS:
                records = await self.backend.run_dns_benchmark(run.params)
            else:
                records = await self.backend.perform_download_speed_test(run.params)
            if self._is_stale(run):
                return
            results = tuple(records)
            display = _display_list(run.kind, results)
        except Exception as e:
            self._resolve_failure(run, e)
        else:
            self._resolve_success(run, results, display)

    def _is_stale(self, run: BenchmarkRun) -> bool:
        if run.id != self._active_id:
            logger.debug("Discarding outcome of run %d (active: %s)", run.id, self._active_id)
            return True
        return False

    def _resolve_success(
        self,
        run: BenchmarkRun,
        results: tuple[ResultRecord, ...],
        display: tuple[ResultRecord, ...],
    ) -> None:
        self._publish(RunSnapshot(
            run_id=run.id,
            kind=run.kind,
            params=run.params,
            loading=False,
            results=results,
            display=display,
        ))
        self._settle(run.id, RunStatus.COMPLETED)

    def _resolve_failure(self, run: BenchmarkRun, error: Exception) -> None:
        if self._is_stale(run):
            return

        message = str(error) or error.__class__.__name__
        logger.warning("Run %d failed: %s", run.id, message)

        self._publish(RunSnapshot(
            run_id=run.id,
            kind=run.kind,
            params=run.params,
            loading=False,
            error=message,
        ))
        self._settle(run.id, RunStatus.FAILED)

    def _on_task_done(self, run_id: int) -> None:
        handle = self._handles.pop(run_id, None)
        if handle is not None and not handle.run.status.is_terminal:
            # Task was cancelled before resolving (shutdown)
            handle._settle(RunStatus.CANCELLED)

    def cancel(self) -> None:
        """
        Stop showing the active run.

        The backend call is not interrupted; whatever it returns later
        is discarded because its id is no longer active.
        """
        run_id = self._active_id
        self._active_id = None
        if run_id is not None:
            logger.debug("Run %d cancelled", run_id)
            self._settle(run_id, RunStatus.CANCELLED)

        if self._snapshot.loading:
            self._publish(replace(self._snapshot, loading=False))

    async def export(
        self,
        saver: FileSaver,
        fmt: str = "csv",
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Save the current raw results (unusable records included).

        Args:
            saver: Export target
            fmt: "csv" or "json"
            now: Timestamp for the file name (default: current time)

        Returns:
            True if the file was saved; False when there is nothing to
            export or the save failed
        """
        snapshot = self._snapshot
        if not snapshot.results or snapshot.kind is None:
            logger.info("Nothing to export")
            return False

        try:
            if fmt == "json":
                text = JSONOutput.format(snapshot.results)
                mime_type = JSON_MIME_TYPE
            else:
                text = CSVOutput.format(snapshot.kind, snapshot.results)
                mime_type = CSV_MIME_TYPE
            name = export_filename(snapshot.kind, snapshot.target or "", now, extension=fmt)
        except Exception:
            logger.exception("Failed to serialize results")
            return False

        return await saver.save(text.encode("utf-8"), name, mime_type)

    async def aclose(self) -> None:
        """Drop the active run and cancel every backend task still running."""
        self._active_id = None
        tasks = [handle.task for handle in self._handles.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()
