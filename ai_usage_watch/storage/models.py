"""
Data models for the ingestion layer.

Defines usage records, per-file read cursors, priced cache entries and
per-day usage totals.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from numbers import Real
from typing import Dict, Optional, Set


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class UsageRecord:
    """Immutable usage record parsed from one line of a usage log.

    Token counts are kept exactly as emitted by the source tool. Corrupt
    numeric values (negative, NaN, infinite) pass validation on purpose and
    are neutralized later by the aggregator.
    """
    timestamp: datetime
    conversation_id: str
    request_id: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cache_creation_tokens: Optional[int] = None
    cache_read_tokens: Optional[int] = None
    cost: Optional[float] = None
    is_batch_api: bool = False

    def __post_init__(self):
        """Validate field types."""
        if not isinstance(self.timestamp, datetime):
            raise ValueError("timestamp must be a datetime")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        for name in ("conversation_id", "request_id", "model"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{name} must be a non-empty string")
        for name in ("prompt_tokens", "completion_tokens", "total_tokens"):
            if not _is_number(getattr(self, name)):
                raise ValueError(f"{name} must be a number")
        for name in ("cache_creation_tokens", "cache_read_tokens", "cost"):
            value = getattr(self, name)
            if value is not None and not _is_number(value):
                raise ValueError(f"{name} must be a number when present")


@dataclass(frozen=True)
class SourceFileCursor:
    """Read position bookkeeping for one observed log file.

    ``last_read_offset_estimate`` is the byte length consumed by the last
    read; resumption is proportional, not byte exact.
    """
    path: str
    last_modified_time: float
    last_byte_length: int
    last_read_offset_estimate: int

    def is_unchanged(self, modified_time: float, byte_length: int) -> bool:
        return (
            modified_time == self.last_modified_time
            and byte_length == self.last_byte_length
        )

    def is_rotated(self, byte_length: int) -> bool:
        """A file that shrank has been truncated or replaced."""
        return byte_length < self.last_byte_length


@dataclass(frozen=True)
class PricedRecord:
    """An admitted record with its sanitized cost and token contribution."""
    record: UsageRecord
    cost: float
    tokens: int

    @property
    def timestamp(self) -> datetime:
        return self.record.timestamp

    @property
    def conversation_id(self) -> str:
        return self.record.conversation_id

    @property
    def model(self) -> str:
        return self.record.model


@dataclass
class DailyUsage:
    """Token and cost totals of one local calendar day, split by model."""
    day: date
    tokens: int = 0
    cost: float = 0.0
    conversation_ids: Set[str] = field(default_factory=set)
    model_tokens: Dict[str, int] = field(default_factory=dict)
    model_costs: Dict[str, float] = field(default_factory=dict)

    def add(self, entry: PricedRecord) -> None:
        self.tokens += entry.tokens
        self.cost += entry.cost
        self.conversation_ids.add(entry.conversation_id)
        self.model_tokens[entry.model] = self.model_tokens.get(entry.model, 0) + entry.tokens
        self.model_costs[entry.model] = self.model_costs.get(entry.model, 0.0) + entry.cost
