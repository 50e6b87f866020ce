"""
Burn rate analysis.

Compares today's spend with the trailing daily average.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Optional

from .clock import start_of_day
from ai_usage_watch.storage.repository import UsageRepository

TRAILING_DAYS = 7


class BurnRateTrend(Enum):
    """Direction of today's spend relative to the trailing average."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True)
class BurnRateConfig:
    """Trend classification thresholds, in percent."""
    trend_threshold_percent: float = 10.0

    def __post_init__(self):
        """Validate threshold is positive."""
        if self.trend_threshold_percent <= 0:
            raise ValueError("trend_threshold_percent must be > 0")


@dataclass(frozen=True)
class BurnRateResult:
    """Burn rate computation result."""
    today_cost: float
    trailing_daily_average: float
    burn_rate: float
    trend: BurnRateTrend

    def __post_init__(self):
        """Validate no non-finite value leaks out."""
        for name in ("today_cost", "trailing_daily_average", "burn_rate"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite")
        if self.today_cost < 0:
            raise ValueError("today_cost cannot be negative")
        if self.trailing_daily_average < 0:
            raise ValueError("trailing_daily_average cannot be negative")


def classify_trend(burn_rate: float, config: BurnRateConfig) -> BurnRateTrend:
    if burn_rate > config.trend_threshold_percent:
        return BurnRateTrend.INCREASING
    if burn_rate < -config.trend_threshold_percent:
        return BurnRateTrend.DECREASING
    return BurnRateTrend.STABLE


def compute_burn_rate(
    repository: UsageRepository,
    now: datetime,
    config: BurnRateConfig = BurnRateConfig(),
    tz: Optional[tzinfo] = None,
) -> BurnRateResult:
    """Compute the burn rate from cached records.

    The cache is split into "today" (since local midnight) and the seven
    full days before it. The trailing average always divides by seven, so
    quiet days pull the average down instead of being skipped.

    Args:
        repository: Raw record cache to read
        now: Reference time
        config: Trend thresholds
        tz: Timezone for the day boundary (system local when None)

    Returns:
        BurnRateResult; ``burn_rate`` is 0 when the trailing average is 0
    """
    today_start = start_of_day(now, tz)
    trailing_start = today_start - timedelta(days=TRAILING_DAYS)

    today_cost = sum(entry.cost for entry in repository.records_since(today_start))
    trailing_cost = sum(
        entry.cost for entry in repository.records_between(trailing_start, today_start)
    )
    trailing_average = trailing_cost / TRAILING_DAYS

    if trailing_average > 0:
        burn_rate = (today_cost - trailing_average) / trailing_average * 100
    else:
        burn_rate = 0.0

    return BurnRateResult(
        today_cost=today_cost,
        trailing_daily_average=trailing_average,
        burn_rate=burn_rate,
        trend=classify_trend(burn_rate, config),
    )
