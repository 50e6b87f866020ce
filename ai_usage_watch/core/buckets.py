"""
Fixed-length time bucket series.

Circular arrays of (window start, token sum, cost sum) slices that reuse
their oldest slice as time advances instead of growing.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import List, Optional, Tuple

from .clock import start_of_day, to_local

# Arbitrary Monday; slice ordinals count spans from here in local wall time
_EPOCH = datetime(1970, 1, 5)


class BucketAlignment(Enum):
    """How the span covered by a series is anchored."""
    ROLLING = "rolling"          # the last N slices up to now
    DAILY_RESET = "daily_reset"  # the slices of the current local day


@dataclass(frozen=True)
class BucketSlice:
    """One slice of a bucket series."""
    window_start: datetime
    tokens: int
    cost: float


class BucketSeries:
    """Ring buffer of time-windowed sums.

    Slices live in preallocated arrays addressed by ``ordinal % slice_count``,
    where the ordinal counts slice spans since a fixed local-time epoch. Each
    slot remembers the ordinal it was last written for; a write landing on a
    slot holding an older ordinal zeroes it first, so eviction is lazy and
    O(1). The head of the ring is the slot of the current ordinal.
    """

    def __init__(
        self,
        name: str,
        slice_count: int,
        slice_span: timedelta,
        alignment: BucketAlignment = BucketAlignment.ROLLING,
        tz: Optional[tzinfo] = None,
    ):
        if slice_count <= 0:
            raise ValueError("slice_count must be > 0")
        if slice_span <= timedelta(0) or timedelta(days=1) % slice_span:
            raise ValueError("slice_span must evenly divide a day")
        if alignment == BucketAlignment.DAILY_RESET and slice_span * slice_count != timedelta(days=1):
            raise ValueError("daily_reset series must cover exactly one day")

        self.name = name
        self.slice_count = slice_count
        self.slice_span = slice_span
        self.alignment = alignment
        self.tz = tz
        self._ordinals: List[Optional[int]] = [None] * slice_count
        self._tokens: List[int] = [0] * slice_count
        self._costs: List[float] = [0.0] * slice_count

    def _ordinal(self, value: datetime) -> int:
        local = to_local(value, self.tz).replace(tzinfo=None)
        return (local - _EPOCH) // self.slice_span

    def _window(self, now: datetime) -> Tuple[int, int]:
        """Inclusive ordinal range the series covers at ``now``."""
        now_ordinal = self._ordinal(now)
        if self.alignment == BucketAlignment.DAILY_RESET:
            first = self._ordinal(start_of_day(now, self.tz))
            return first, first + self.slice_count - 1
        return now_ordinal - self.slice_count + 1, now_ordinal

    def _slot_start(self, ordinal: int, now: datetime) -> datetime:
        local_tz = to_local(now, self.tz).tzinfo
        return (_EPOCH + ordinal * self.slice_span).replace(tzinfo=local_tz)

    def head(self, now: datetime) -> int:
        """Array index of the slice that covers ``now``."""
        return self._ordinal(now) % self.slice_count

    def covers(self, timestamp: datetime, now: datetime) -> bool:
        ordinal = self._ordinal(timestamp)
        first, last = self._window(now)
        return first <= ordinal <= min(last, self._ordinal(now))

    def add(self, timestamp: datetime, tokens: int, cost: float, now: datetime) -> bool:
        """Accumulate one contribution.

        Args:
            timestamp: Instant of the contribution
            tokens: Non-negative token count
            cost: Non-negative cost
            now: Reference time defining the covered span

        Returns:
            False if ``timestamp`` falls outside the span (including the
            future), True otherwise
        """
        if not self.covers(timestamp, now):
            return False
        ordinal = self._ordinal(timestamp)
        index = ordinal % self.slice_count
        if self._ordinals[index] != ordinal:
            # slot still holds an elapsed window; reuse it
            self._ordinals[index] = ordinal
            self._tokens[index] = 0
            self._costs[index] = 0.0
        self._tokens[index] += tokens
        self._costs[index] += cost
        return True

    def slices(self, now: datetime) -> List[BucketSlice]:
        """All slices of the covered span, oldest first.

        Slots whose stored window has elapsed read as zero.
        """
        first, last = self._window(now)
        result = []
        for ordinal in range(first, last + 1):
            index = ordinal % self.slice_count
            if self._ordinals[index] == ordinal:
                tokens, cost = self._tokens[index], self._costs[index]
            else:
                tokens, cost = 0, 0.0
            result.append(BucketSlice(self._slot_start(ordinal, now), tokens, cost))
        return result

    def totals(self, now: datetime) -> Tuple[int, float]:
        parts = self.slices(now)
        return sum(s.tokens for s in parts), sum(s.cost for s in parts)

    def clear(self) -> None:
        for index in range(self.slice_count):
            self._ordinals[index] = None
            self._tokens[index] = 0
            self._costs[index] = 0.0


def build_default_series(tz: Optional[tzinfo] = None) -> Tuple[BucketSeries, BucketSeries, BucketSeries]:
    """The fine (2h of 5min), hour-of-day and rolling-week series."""
    return (
        BucketSeries("fine", 24, timedelta(minutes=5), BucketAlignment.ROLLING, tz),
        BucketSeries("hourly", 24, timedelta(hours=1), BucketAlignment.DAILY_RESET, tz),
        BucketSeries("daily", 7, timedelta(days=1), BucketAlignment.ROLLING, tz),
    )
