"""
Ingestion cycle scheduling.

Funnels change notifications and timer ticks through one queue so that
exactly one ingestion cycle touches cursors, the identity window and the
aggregator at a time.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .aggregator import WindowedAggregator
from .clock import utcnow
from .dedup import IdentityWindow
from ai_usage_watch.config.loader import WatchConfig
from ai_usage_watch.ingest.sources import discover_log_files
from ai_usage_watch.ingest.tailer import LogTailer
from ai_usage_watch.storage.models import PricedRecord

logger = logging.getLogger(__name__)

_STOP = object()


class SchedulerState(Enum):
    """Phase of the ingestion cycle."""
    IDLE = "idle"
    SCANNING = "scanning"
    READING = "reading"
    DEDUPING = "deduping"
    AGGREGATING = "aggregating"
    STOPPED = "stopped"


@dataclass
class CycleReport:
    """Counters for one ingestion cycle."""
    reason: str
    files_scanned: int = 0
    files_changed: int = 0
    files_failed: int = 0
    records_read: int = 0
    records_admitted: int = 0
    duplicates: int = 0
    records_rejected: int = 0
    pruned: int = 0


class UpdateScheduler:
    """Sequential ingestion cycles driven by a trigger queue.

    Triggers never start a cycle directly: ``request_cycle`` enqueues a
    reason, and the single consumer task runs one cycle for everything
    queued so far. A trigger that arrives mid-cycle stays queued, so the
    consumer starts exactly one follow-up cycle when the current one ends.
    """

    def __init__(
        self,
        config: WatchConfig,
        tailer: LogTailer,
        window: IdentityWindow,
        aggregator: WindowedAggregator,
        on_admitted: Optional[Callable[[List[PricedRecord]], object]] = None,
        discover: Callable[[Iterable[Path], str], List[str]] = discover_log_files,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.tailer = tailer
        self.window = window
        self.aggregator = aggregator
        self._on_admitted = on_admitted
        self._discover = discover
        self._clock = clock
        self._state = SchedulerState.IDLE
        self._queue: asyncio.Queue = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._consumer: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None
        self.cycles_completed = 0
        self.last_report: Optional[CycleReport] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def request_cycle(self, reason: str = "manual") -> None:
        """Ask for an ingestion cycle; coalesced with any pending request."""
        if self._state == SchedulerState.STOPPED:
            return
        self._queue.put_nowait(reason)

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._state = SchedulerState.IDLE
        self._consumer = asyncio.create_task(self._consume())
        self._ticker = asyncio.create_task(self._tick())

    async def stop(self) -> None:
        """Stop both loops, letting an in-flight cycle run to completion."""
        self._stop.set()
        if self._ticker:
            self._ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ticker
            self._ticker = None
        if self._consumer:
            self._queue.put_nowait(_STOP)
            await self._consumer
            self._consumer = None
        self._state = SchedulerState.STOPPED

    async def _tick(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.config.ingest_interval_seconds)
            except asyncio.TimeoutError:
                self.request_cycle("tick")

    async def _consume(self) -> None:
        while True:
            reasons = [await self._queue.get()]
            while not self._queue.empty():
                reasons.append(self._queue.get_nowait())
            if _STOP in reasons or self._stop.is_set():
                return
            reason = ",".join(dict.fromkeys(reasons))
            try:
                await self.run_cycle(reason)
            except Exception:
                logger.exception("Ingestion cycle failed")

    async def run_cycle(self, reason: str = "manual") -> CycleReport:
        """Run one ingestion pass over every discovered file.

        Blocking file work runs in worker threads; state mutation happens
        only here, under the cycle lock.

        Args:
            reason: Trigger description for logging

        Returns:
            CycleReport with the counters of this cycle
        """
        async with self._lock:
            report = CycleReport(reason=reason)
            try:
                self._state = SchedulerState.SCANNING
                paths = await asyncio.to_thread(
                    self._discover, self.config.data_paths, self.config.file_pattern
                )
                report.files_scanned = len(paths)
                for path in paths:
                    await self._ingest_file(path, report)
                report.pruned = self.aggregator.prune(self._clock())
            finally:
                if self._state != SchedulerState.STOPPED:
                    self._state = SchedulerState.IDLE

            self.cycles_completed += 1
            self.last_report = report
            if report.files_changed or report.files_failed:
                logger.info(
                    "Cycle (%s): %d file(s) changed, %d record(s) admitted, %d duplicate(s), %d failed",
                    reason, report.files_changed, report.records_admitted,
                    report.duplicates, report.files_failed,
                )
            return report

    async def _ingest_file(self, path: str, report: CycleReport) -> None:
        self._state = SchedulerState.READING
        try:
            result = await asyncio.to_thread(self.tailer.read_changes, path)
        except OSError as e:
            report.files_failed += 1
            self.tailer.stats.unreadable_files += 1
            logger.warning("Skipping unreadable file %s this cycle: %s", path, e)
            return
        if result.unchanged:
            return
        report.files_changed += 1
        report.records_read += len(result.records)

        self._state = SchedulerState.DEDUPING
        admitted = [record for record in result.records if self.window.admit(record.request_id)]
        report.duplicates += len(result.records) - len(admitted)
        if not admitted:
            return

        self._state = SchedulerState.AGGREGATING
        aggregation = self.aggregator.apply(admitted, self._clock())
        for record in aggregation.rejected:
            self.window.release(record.request_id)
        report.records_rejected += len(aggregation.rejected)
        report.records_admitted += len(admitted) - len(aggregation.rejected)
        if self._on_admitted is not None:
            self._on_admitted(aggregation.priced)

    async def clear_cache(self) -> None:
        """Forget cursors, identities and aggregates; the next cycle reloads everything."""
        async with self._lock:
            self.tailer.clear_cache()
            self.window.clear()
            self.aggregator.clear()
