"""
Live snapshot building.

Derives a point-in-time usage summary and per-record efficiency events from
the aggregator's state.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Iterable, List, Optional, Tuple

from .aggregator import WindowedAggregator
from .buckets import BucketSlice
from .burn_rate import BurnRateConfig, BurnRateTrend, compute_burn_rate
from .clock import start_of_day, start_of_week, utcnow
from .efficiency import EfficiencyConfig, EfficiencyTier, DEFAULT_EFFICIENCY, classify_efficiency
from ai_usage_watch.storage.models import PricedRecord


@dataclass(frozen=True)
class ConversationEfficiencyEvent:
    """Efficiency grade of one newly admitted record."""
    conversation_id: str
    model: str
    cost: float
    tokens: int
    timestamp: datetime
    tier: EfficiencyTier


@dataclass(frozen=True)
class LiveSnapshot:
    """Immutable point-in-time usage summary.

    Advisory only: a snapshot built while an ingestion cycle is running may
    reflect part of that cycle's batch.
    """
    today_tokens: int
    today_cost: float
    week_tokens: int
    week_cost: float
    burn_rate: float
    trend: BurnRateTrend
    trailing_daily_average: float
    last_record_model: Optional[str]
    last_record_cost: float
    conversations_today: int
    average_cost_per_conversation: float
    fine_series: Tuple[BucketSlice, ...]
    hourly_series: Tuple[BucketSlice, ...]
    daily_series: Tuple[BucketSlice, ...]
    generated_at: datetime

    def __post_init__(self):
        """Validate totals are consistent."""
        if self.today_tokens < 0 or self.today_cost < 0:
            raise ValueError("today totals cannot be negative")
        if self.week_tokens < self.today_tokens:
            raise ValueError("week_tokens cannot be below today_tokens")


class SnapshotBuilder:
    """Builds snapshots and tracks recent efficiency events.

    ``record_admitted`` is called by the ingestion cycle; ``build`` runs on
    the snapshot timer and only reads aggregator state.
    """

    def __init__(
        self,
        aggregator: WindowedAggregator,
        efficiency: EfficiencyConfig = DEFAULT_EFFICIENCY,
        burn_rate: BurnRateConfig = BurnRateConfig(),
        recent_capacity: int = 50,
    ):
        self.aggregator = aggregator
        self.efficiency = efficiency
        self.burn_rate_config = burn_rate
        self._recent: Deque[ConversationEfficiencyEvent] = deque(maxlen=recent_capacity)

    @property
    def recent_events(self) -> List[ConversationEfficiencyEvent]:
        """Recent events, oldest first."""
        return list(self._recent)

    def record_admitted(self, records: Iterable[PricedRecord]) -> List[ConversationEfficiencyEvent]:
        """Tag newly admitted records and append them to the recent list.

        Args:
            records: Priced records admitted by the last aggregation

        Returns:
            The events created, in timestamp order
        """
        events = []
        for entry in sorted(records, key=lambda e: e.timestamp):
            thresholds = self.efficiency.get_thresholds(entry.model)
            events.append(ConversationEfficiencyEvent(
                conversation_id=entry.conversation_id,
                model=entry.model,
                cost=entry.cost,
                tokens=entry.tokens,
                timestamp=entry.timestamp,
                tier=classify_efficiency(entry.tokens, entry.cost, thresholds),
            ))
        self._recent.extend(events)
        return events

    def build(self, now: Optional[datetime] = None) -> LiveSnapshot:
        """Build a snapshot of the current aggregator state.

        Args:
            now: Reference time (defaults to current time)

        Returns:
            A new LiveSnapshot
        """
        now = now or utcnow()
        tz = self.aggregator.tz
        repository = self.aggregator.repository

        today_start = start_of_day(now, tz)
        week_entries = repository.records_since(start_of_week(now, tz))
        today_entries = [entry for entry in week_entries if entry.timestamp >= today_start]

        today_cost = sum(entry.cost for entry in today_entries)
        conversations = {entry.conversation_id for entry in today_entries}
        burn = compute_burn_rate(repository, now, self.burn_rate_config, tz)
        latest = repository.latest()

        return LiveSnapshot(
            today_tokens=sum(entry.tokens for entry in today_entries),
            today_cost=today_cost,
            week_tokens=sum(entry.tokens for entry in week_entries),
            week_cost=sum(entry.cost for entry in week_entries),
            burn_rate=burn.burn_rate,
            trend=burn.trend,
            trailing_daily_average=burn.trailing_daily_average,
            last_record_model=latest.model if latest else None,
            last_record_cost=latest.cost if latest else 0.0,
            conversations_today=len(conversations),
            average_cost_per_conversation=today_cost / len(conversations) if conversations else 0.0,
            fine_series=tuple(self.aggregator.fine.slices(now)),
            hourly_series=tuple(self.aggregator.hourly.slices(now)),
            daily_series=tuple(self.aggregator.daily.slices(now)),
            generated_at=now,
        )

    def clear(self) -> None:
        self._recent.clear()
