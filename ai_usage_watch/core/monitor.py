"""
Live usage monitor.

Wires the tailer, identity window, aggregator, scheduler, watcher and
snapshot builder together and exposes start/stop.
"""

import asyncio
import contextlib
import logging
from functools import partial
from typing import Callable, List, Optional

from .aggregator import CostFunction, WindowedAggregator
from .dedup import IdentityWindow
from .pricing import calculate_cost
from .scheduler import CycleReport, UpdateScheduler
from .snapshot import ConversationEfficiencyEvent, LiveSnapshot, SnapshotBuilder
from .watch import DirectoryWatcher
from ai_usage_watch.config.loader import WatchConfig
from ai_usage_watch.ingest.tailer import LogTailer

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[LiveSnapshot, List[ConversationEfficiencyEvent]], None]


class UsageMonitor:
    """Continuously ingests usage logs and publishes live snapshots.

    Ingestion runs on the scheduler; snapshots run on their own timer so a
    slow ingestion cycle never stalls the display.
    """

    def __init__(
        self,
        config: WatchConfig,
        cost_function: Optional[CostFunction] = None,
        watch: bool = True,
    ):
        self.config = config
        self.tailer = LogTailer()
        self.window = IdentityWindow(config.dedup_capacity)
        self.aggregator = WindowedAggregator(
            retention_days=config.retention_days,
            cost_function=cost_function or partial(calculate_cost, table=config.pricing),
            tz=config.get_tz(),
        )
        self.builder = SnapshotBuilder(
            self.aggregator,
            efficiency=config.efficiency,
            burn_rate=config.burn_rate,
            recent_capacity=config.recent_events_capacity,
        )
        self.scheduler = UpdateScheduler(
            config, self.tailer, self.window, self.aggregator,
            on_admitted=self.builder.record_admitted,
        )
        self.watcher: Optional[DirectoryWatcher] = None
        if watch:
            self.watcher = DirectoryWatcher(
                config.data_paths,
                on_change=lambda path: self.scheduler.request_cycle(f"change:{path}"),
                pattern=config.file_pattern,
                debounce_ms=config.debounce_ms,
            )
        self._on_snapshot: Optional[SnapshotCallback] = None
        self._snapshot_task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._snapshot_task is not None and not self._snapshot_task.done()

    async def start(self, on_snapshot: SnapshotCallback) -> None:
        """Load existing data, start watching and emit the first snapshot.

        Args:
            on_snapshot: Called with each snapshot and the recent efficiency events
        """
        if self.running:
            return
        self._on_snapshot = on_snapshot
        self._stop.clear()

        try:
            await self.scheduler.run_cycle("startup")
        except Exception:
            logger.exception("Initial load failed; retrying on the ingestion timer")
        await self.scheduler.start()
        if self.watcher is not None:
            watched = await self.watcher.start()
            for path in watched:
                logger.info("Watching %s", path)

        self.emit_snapshot()
        self._snapshot_task = asyncio.create_task(self._snapshot_loop())

    async def stop(self) -> None:
        """Close watches, cancel timers and let an in-flight cycle finish."""
        self._stop.set()
        if self._snapshot_task:
            self._snapshot_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._snapshot_task
            self._snapshot_task = None
        if self.watcher is not None:
            await self.watcher.stop()
        await self.scheduler.stop()
        logger.info("Monitoring stopped")

    async def _snapshot_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.config.snapshot_interval_seconds)
            except asyncio.TimeoutError:
                self.emit_snapshot()

    def emit_snapshot(self) -> Optional[LiveSnapshot]:
        """Build a snapshot and hand it to the callback."""
        try:
            snapshot = self.builder.build()
            if self._on_snapshot is not None:
                self._on_snapshot(snapshot, self.builder.recent_events)
            return snapshot
        except Exception:
            logger.exception("Snapshot publication failed")
            return None

    async def refresh(self) -> CycleReport:
        """Run one ingestion cycle outside the scheduler loop."""
        return await self.scheduler.run_cycle("refresh")

    def snapshot(self) -> LiveSnapshot:
        return self.builder.build()

    async def clear_cache(self) -> None:
        """Drop all state and schedule a full reload."""
        await self.scheduler.clear_cache()
        self.builder.clear()
        self.scheduler.request_cycle("cache-clear")
