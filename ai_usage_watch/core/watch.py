"""
Change notifications for usage log directories.
"""

import asyncio
import contextlib
import logging
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)


class DirectoryWatcher:
    """Recursive, debounced watch on each data directory.

    Each directory gets its own task, so a directory whose watch fails to
    set up (or dies later) does not affect the others. Missing directories
    are optional sources and are skipped.
    """

    def __init__(
        self,
        paths: Iterable[Path],
        on_change: Callable[[str], None],
        pattern: str = "*.jsonl",
        debounce_ms: int = 200,
    ):
        self.paths = [Path(p).expanduser() for p in paths]
        self.on_change = on_change
        self.pattern = pattern
        self.debounce_ms = debounce_ms
        self._stop = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    @property
    def watched(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def _filter(self, change: Change, path: str) -> bool:
        return fnmatch(Path(path).name, self.pattern)

    async def start(self) -> List[Path]:
        """Start one watch task per existing directory.

        Returns:
            Directories a watch was started for
        """
        self._stop.clear()
        started = []
        for path in self.paths:
            if not path.is_dir():
                logger.debug("Not watching missing directory %s", path)
                continue
            self._tasks.append(asyncio.create_task(self._watch(path)))
            started.append(path)
        return started

    async def _watch(self, path: Path) -> None:
        try:
            async for changes in awatch(
                path,
                watch_filter=self._filter,
                debounce=self.debounce_ms,
                stop_event=self._stop,
                recursive=True,
            ):
                logger.debug("%d change(s) under %s", len(changes), path)
                self.on_change(str(path))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Watch on %s failed; relying on the ingestion timer", path, exc_info=True)

    async def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal every watch to stop and wait for them to exit."""
        self._stop.set()
        tasks, self._tasks = self._tasks, []
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
