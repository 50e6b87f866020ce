"""
Incremental tailing of append-only usage logs.

Resumes each changed file from a proportional estimate of where the last
read stopped.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .parsing import MalformedLineError, build_record, decode_line
from .sources import read_file_bytes
from ai_usage_watch.storage.models import SourceFileCursor, UsageRecord

logger = logging.getLogger(__name__)


@dataclass
class TailResult:
    """Outcome of reading one file."""
    path: str
    records: List[UsageRecord]
    cursor: SourceFileCursor
    start_line: int = 0
    lines_parsed: int = 0
    malformed_lines: int = 0
    invalid_records: int = 0
    rotated: bool = False
    unchanged: bool = False


@dataclass
class TailStats:
    """Cumulative counters across all reads."""
    files_read: int = 0
    lines_parsed: int = 0
    malformed_lines: int = 0
    invalid_records: int = 0
    rotations: int = 0
    unreadable_files: int = 0

    def record(self, result: TailResult) -> None:
        self.files_read += 1
        self.lines_parsed += result.lines_parsed
        self.malformed_lines += result.malformed_lines
        self.invalid_records += result.invalid_records
        if result.rotated:
            self.rotations += 1


def _split_complete_lines(content: bytes) -> Tuple[int, List[str]]:
    """Split content into non-blank lines, holding back a partial tail.

    A final line without a trailing newline is only consumed when it is
    already a complete JSON document; otherwise the writer is mid-append and
    the fragment is left for the next read.

    Returns:
        (bytes consumed, decoded lines)
    """
    consumed = len(content)
    if content and not content.endswith(b"\n"):
        last_newline = content.rfind(b"\n")
        tail = content[last_newline + 1:]
        try:
            json.loads(tail)
        except ValueError:
            consumed = last_newline + 1
    text = content[:consumed].decode("utf-8", errors="replace")
    return consumed, [line for line in text.splitlines() if line.strip()]


class LogTailer:
    """Reads newly appended usage records from log files.

    One cursor is kept per path. Resumption is approximate: the start line
    is ``floor(total_lines * prior_length / current_length)``, so a few
    already-seen lines may be parsed again; the identity window downstream
    absorbs them.
    """

    def __init__(self, reader: Callable[[str], bytes] = read_file_bytes):
        self._reader = reader
        self._cursors: Dict[str, SourceFileCursor] = {}
        self.stats = TailStats()

    def cursor_for(self, path: str) -> Optional[SourceFileCursor]:
        return self._cursors.get(path)

    def read_changes(self, path: str) -> TailResult:
        """Read the records appended to ``path`` since its last read.

        Args:
            path: Log file path

        Returns:
            TailResult with schema-valid records and the updated cursor

        Raises:
            OSError: If the file cannot be stat'ed or read; the cursor is
                left untouched so the file is retried next cycle
        """
        stat = os.stat(path)
        modified_time = stat.st_mtime
        cursor = self._cursors.get(path)
        if cursor is not None and cursor.is_unchanged(modified_time, stat.st_size):
            return TailResult(path=path, records=[], cursor=cursor, unchanged=True)

        content = self._reader(path)
        consumed, lines = _split_complete_lines(content)

        rotated = cursor is not None and cursor.is_rotated(consumed)
        start_line = 0
        if cursor is not None and not rotated and consumed:
            start_line = len(lines) * cursor.last_byte_length // consumed
        if rotated:
            logger.info("File %s shrank from %d to %d bytes; re-reading from start",
                        path, cursor.last_byte_length, consumed)

        result = TailResult(
            path=path,
            records=[],
            cursor=SourceFileCursor(
                path=path,
                last_modified_time=modified_time,
                last_byte_length=consumed,
                last_read_offset_estimate=consumed,
            ),
            start_line=start_line,
            rotated=rotated,
        )
        self._parse_lines(lines[start_line:], result)

        self._cursors[path] = result.cursor
        self.stats.record(result)
        logger.debug(
            "%s: %d record(s) from line %d, %d malformed, %d invalid",
            path, len(result.records), start_line, result.malformed_lines, result.invalid_records,
        )
        return result

    def _parse_lines(self, lines: List[str], result: TailResult) -> None:
        for line in lines:
            result.lines_parsed += 1
            try:
                raw = decode_line(line)
            except MalformedLineError:
                result.malformed_lines += 1
                continue
            if raw is None:
                continue
            try:
                result.records.append(build_record(raw))
            except ValueError as e:
                result.invalid_records += 1
                logger.debug("Invalid usage record in %s: %s", result.path, e)

    def forget(self, path: str) -> None:
        self._cursors.pop(path, None)

    def clear_cache(self) -> None:
        """Drop every cursor, forcing a full re-read of all files."""
        self._cursors.clear()
