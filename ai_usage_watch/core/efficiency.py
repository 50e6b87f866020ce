"""
Efficiency classification for usage records.

Grades how many tokens a record bought per dollar against model-family
thresholds.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict

# Floor for the cost denominator so free records do not divide by zero
COST_EPSILON = 0.001


class EfficiencyTier(Enum):
    """Token-per-dollar grade of a record."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class EfficiencyThresholds:
    """Tokens-per-dollar cut-offs for one model family."""
    high: float
    medium: float

    def __post_init__(self):
        """Validate thresholds are positive and ordered."""
        if self.medium <= 0:
            raise ValueError("medium threshold must be > 0")
        if self.high < self.medium:
            raise ValueError("high threshold must be >= medium threshold")


@dataclass(frozen=True)
class EfficiencyConfig:
    """Per-family thresholds with a fallback for unlisted families."""
    families: Dict[str, EfficiencyThresholds]
    defaults: EfficiencyThresholds

    def get_thresholds(self, model: str) -> EfficiencyThresholds:
        """Thresholds for the first family whose name appears in ``model``.

        Args:
            model: Model identifier, e.g. ``claude-opus-4-20250514``

        Returns:
            Family thresholds, or the defaults when no family matches
        """
        lowered = model.lower()
        for family, thresholds in self.families.items():
            if family.lower() in lowered:
                return thresholds
        return self.defaults


DEFAULT_EFFICIENCY = EfficiencyConfig(
    families={"opus": EfficiencyThresholds(high=8000, medium=4000)},
    defaults=EfficiencyThresholds(high=15000, medium=8000),
)


def tokens_per_cost(tokens: float, cost: float) -> float:
    """Tokens bought per dollar, with non-finite inputs treated as zero."""
    if not math.isfinite(tokens) or tokens < 0:
        tokens = 0
    if not math.isfinite(cost) or cost < 0:
        cost = 0.0
    return tokens / max(cost, COST_EPSILON)


def classify_efficiency(tokens: float, cost: float, thresholds: EfficiencyThresholds) -> EfficiencyTier:
    """Assign an efficiency tier.

    Rules:
    - HIGH: tokens per dollar strictly above ``thresholds.high``
    - MEDIUM: strictly above ``thresholds.medium``
    - LOW: everything else

    Args:
        tokens: Total tokens of the record
        cost: Cost of the record in dollars
        thresholds: Family thresholds

    Returns:
        The efficiency tier
    """
    ratio = tokens_per_cost(tokens, cost)
    if ratio > thresholds.high:
        return EfficiencyTier.HIGH
    if ratio > thresholds.medium:
        return EfficiencyTier.MEDIUM
    return EfficiencyTier.LOW
