"""
Windowed aggregation of admitted usage records.

Feeds the rolling bucket series and the raw record cache.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Iterable, List, Optional, Tuple

from .buckets import BucketSeries, build_default_series
from .clock import to_local, utcnow
from .pricing import calculate_cost
from ai_usage_watch.storage.models import PricedRecord, UsageRecord
from ai_usage_watch.storage.repository import UsageRepository

logger = logging.getLogger(__name__)

CostFunction = Callable[[UsageRecord], float]


def safe_amount(value) -> float:
    """Clamp corrupt numeric input to a zero contribution."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


@dataclass
class AggregationResult:
    """Outcome of one ``apply`` call."""
    priced: List[PricedRecord]
    bucketed: int
    neutralized: int
    rejected: List[UsageRecord] = field(default_factory=list)


class WindowedAggregator:
    """Rolling sums plus a bounded raw record cache.

    Only the ingestion cycle calls ``apply`` and ``prune``; snapshot building
    reads ``series`` and ``repository`` and may observe a partially applied
    batch.
    """

    def __init__(
        self,
        retention_days: int = 30,
        cost_function: Optional[CostFunction] = None,
        tz: Optional[tzinfo] = None,
        repository: Optional[UsageRepository] = None,
    ):
        if retention_days <= 0:
            raise ValueError("retention_days must be > 0")
        self.retention = timedelta(days=retention_days)
        self.cost_function = cost_function or calculate_cost
        self.tz = tz
        self.repository = repository if repository is not None else UsageRepository()
        self.fine, self.hourly, self.daily = build_default_series(tz)

    @property
    def series(self) -> List[BucketSeries]:
        return [self.fine, self.hourly, self.daily]

    def _price(self, record: UsageRecord) -> Tuple[PricedRecord, bool]:
        raw_cost = self.cost_function(record)
        cost = safe_amount(raw_cost)
        tokens = safe_amount(record.total_tokens)
        # NaN compares unequal to itself, so it counts as corrupt too
        corrupt = cost != raw_cost or tokens != record.total_tokens
        return PricedRecord(record=record, cost=cost, tokens=int(tokens)), corrupt

    def apply(self, records: Iterable[UsageRecord], now: Optional[datetime] = None) -> AggregationResult:
        """Fold admitted records into the series and the raw cache.

        Records older than every series span still enter the cache; records
        older than the retention horizon are dropped outright. A record whose
        timestamp or cost cannot be computed is skipped and reported in
        ``rejected`` without touching any series.

        Args:
            records: Deduplicated records
            now: Reference time (defaults to current time)

        Returns:
            AggregationResult with the priced records that were cached
        """
        now = now or utcnow()
        cutoff = now - self.retention
        priced = []
        bucketed = 0
        neutralized = 0
        rejected = []

        for record in records:
            try:
                # every series converts to the display zone; fail before any is touched
                to_local(record.timestamp, self.tz)
                entry, corrupt = self._price(record)
            except (ArithmeticError, ValueError) as e:
                logger.warning("Skipping record %s that cannot be aggregated: %s", record.request_id, e)
                rejected.append(record)
                continue
            if corrupt:
                neutralized += 1
            landed = False
            for series in self.series:
                landed = series.add(record.timestamp, entry.tokens, entry.cost, now) or landed
            if landed:
                bucketed += 1
            if record.timestamp >= cutoff:
                priced.append(entry)

        self.repository.add_records(priced)
        if neutralized:
            logger.warning("Neutralized corrupt numeric fields on %d record(s)", neutralized)
        return AggregationResult(priced=priced, bucketed=bucketed, neutralized=neutralized, rejected=rejected)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Evict cache entries older than the retention horizon.

        Returns:
            Number of evicted records
        """
        now = now or utcnow()
        removed = self.repository.prune(now - self.retention)
        if removed:
            logger.debug("Pruned %d record(s) past retention", removed)
        return removed

    def clear(self) -> None:
        self.repository.clear()
        for series in self.series:
            series.clear()
