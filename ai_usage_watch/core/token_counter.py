"""
Token counting and usage tracking.

Normalizes token counts from usage records for cost calculation.
"""

from dataclasses import dataclass

from ai_usage_watch.storage.models import UsageRecord


@dataclass(frozen=True)
class TokenUsage:
    """Billable token counts of one request.

    Cache creation and cache read tokens are billed separately and do not
    count toward ``total_tokens``.
    """
    prompt_tokens: int
    completion_tokens: int
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Input plus output tokens."""
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def from_record(cls, record: UsageRecord) -> "TokenUsage":
        return cls(
            prompt_tokens=record.prompt_tokens,
            completion_tokens=record.completion_tokens,
            cache_creation_tokens=record.cache_creation_tokens or 0,
            cache_read_tokens=record.cache_read_tokens or 0,
        )
