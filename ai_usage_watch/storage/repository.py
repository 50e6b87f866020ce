"""
In-memory repository for admitted usage records.

Holds the bounded, time-ordered raw record cache used by the snapshot builder.
"""

from bisect import bisect_left, insort
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional

from .models import DailyUsage, PricedRecord
from ai_usage_watch.core.clock import start_of_day, to_local


def _timestamp_key(entry: PricedRecord) -> datetime:
    return entry.timestamp


class UsageRepository:
    """Time-ordered cache of priced usage records.

    The cache is process-lifetime only. Entries are kept sorted by record
    timestamp so range queries and pruning are a bisect away. Records with
    identical timestamps keep their insertion order.
    """

    def __init__(self):
        self._records: List[PricedRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def add_records(self, records: Iterable[PricedRecord]) -> None:
        """Insert records keeping timestamp order.

        Args:
            records: Priced records to add
        """
        for record in records:
            insort(self._records, record, key=_timestamp_key)

    def prune(self, cutoff: datetime) -> int:
        """Drop every record older than ``cutoff``.

        Args:
            cutoff: Oldest timestamp to retain

        Returns:
            Number of records removed
        """
        index = bisect_left(self._records, cutoff, key=_timestamp_key)
        if index:
            del self._records[:index]
        return index

    def records_since(self, start: datetime) -> List[PricedRecord]:
        """Return records with ``timestamp >= start`` in chronological order."""
        index = bisect_left(self._records, start, key=_timestamp_key)
        return self._records[index:]

    def records_between(self, start: datetime, end: datetime) -> List[PricedRecord]:
        """Return records with ``start <= timestamp < end``."""
        lower = bisect_left(self._records, start, key=_timestamp_key)
        upper = bisect_left(self._records, end, key=_timestamp_key)
        return self._records[lower:upper]

    def all_records(self) -> List[PricedRecord]:
        return list(self._records)

    def latest(self) -> Optional[PricedRecord]:
        """Most recent record by timestamp, if any."""
        return self._records[-1] if self._records else None

    def oldest(self) -> Optional[PricedRecord]:
        return self._records[0] if self._records else None

    def get_recent_events(
        self,
        model: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 1000,
        now: Optional[datetime] = None,
    ) -> List[PricedRecord]:
        """Get recent records with optional filtering.

        Args:
            model: Optional filter for specific model
            days: Optional number of days to look back
            limit: Maximum number of records to return
            now: Reference time (defaults to current time)

        Returns:
            List of records ordered by timestamp (newest first)
        """
        if days is not None:
            now = now or datetime.now(timezone.utc)
            candidates = self.records_since(now - timedelta(days=days))
        else:
            candidates = self._records

        events = []
        for entry in reversed(candidates):
            if model and entry.model != model:
                continue
            events.append(entry)
            if len(events) >= limit:
                break
        return events

    def get_usage_stats(
        self,
        model: Optional[str] = None,
        days: int = 30,
        now: Optional[datetime] = None,
    ) -> Dict[str, float]:
        """Get usage statistics for the specified time period.

        Args:
            model: Optional filter for specific model
            days: Number of days to include in the statistics
            now: Reference time (defaults to current time)

        Returns:
            Dictionary containing usage statistics
        """
        now = now or datetime.now(timezone.utc)
        entries = [
            entry for entry in self.records_since(now - timedelta(days=days))
            if not model or entry.model == model
        ]
        total_cost = sum(entry.cost for entry in entries)
        return {
            "total_requests": len(entries),
            "total_cost": total_cost,
            "avg_cost": total_cost / len(entries) if entries else 0.0,
            "total_tokens": sum(entry.tokens for entry in entries),
        }

    def get_daily_usage(
        self,
        days: int = 7,
        tz: Optional[tzinfo] = None,
        now: Optional[datetime] = None,
    ) -> List[DailyUsage]:
        """Get per-day totals for the most recent local days.

        Args:
            days: Number of local calendar days to cover, today included
            tz: Display timezone defining day boundaries (system local if None)
            now: Reference time (defaults to current time)

        Returns:
            One DailyUsage per day that has records, newest first
        """
        if days <= 0:
            raise ValueError("days must be > 0")
        now = now or datetime.now(timezone.utc)
        start = start_of_day(now, tz) - timedelta(days=days - 1)

        by_day: Dict[date, DailyUsage] = {}
        for entry in self.records_since(start):
            if entry.timestamp > now:
                break
            day = to_local(entry.timestamp, tz).date()
            if day not in by_day:
                by_day[day] = DailyUsage(day=day)
            by_day[day].add(entry)
        return [by_day[day] for day in sorted(by_day, reverse=True)]

    def clear(self) -> None:
        self._records.clear()
