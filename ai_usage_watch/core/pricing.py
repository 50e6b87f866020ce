"""
Pricing calculations and rate management.

Handles cost computations for the models found in usage logs.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from .token_counter import TokenUsage
from ai_usage_watch.storage.models import UsageRecord

logger = logging.getLogger(__name__)

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for a specific model."""
    input_per_1m: Decimal
    output_per_1m: Decimal
    cached_per_1m: Decimal

    def __post_init__(self):
        """Validate prices are not negative."""
        for name in ("input_per_1m", "output_per_1m", "cached_per_1m"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass(frozen=True)
class PricingTable:
    """Pricing table for supported models."""
    prices: Dict[str, ModelPricing]
    batch_api_discount: Decimal = field(default=Decimal("0.5"))

    def __post_init__(self):
        """Validate the batch discount is a fraction."""
        if not Decimal("0") <= self.batch_api_discount <= Decimal("1"):
            raise ValueError("batch_api_discount must be between 0 and 1")

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]

    def supports(self, model: str) -> bool:
        return model in self.prices


def _pricing(input_per_1m: str, output_per_1m: str, cached_per_1m: str) -> ModelPricing:
    return ModelPricing(
        input_per_1m=Decimal(input_per_1m),
        output_per_1m=Decimal(output_per_1m),
        cached_per_1m=Decimal(cached_per_1m),
    )


# Default table, overridable through the ``pricing`` config section
PRICING_TABLE = PricingTable({
    "claude-3-opus-20240229": _pricing("15.0", "75.0", "1.875"),
    "claude-3-sonnet-20240229": _pricing("3.0", "15.0", "0.375"),
    "claude-3.5-sonnet-20241022": _pricing("3.0", "15.0", "0.375"),
    "claude-3-haiku-20240307": _pricing("0.25", "1.25", "0.03125"),
    "claude-3.5-haiku-20241022": _pricing("0.8", "4.0", "0.1"),
    "claude-sonnet-4-20250514": _pricing("3.0", "15.0", "0.375"),
    "claude-opus-4-20250514": _pricing("15.0", "75.0", "1.875"),
})


def calculate_token_cost(model: str, usage: TokenUsage, table: PricingTable = PRICING_TABLE) -> float:
    """Calculate the cost of a token usage for a model.

    Cache creation tokens are billed at the input rate, cache reads at the
    cached rate.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Pricing table to use

    Returns:
        Total cost in dollars

    Raises:
        ValueError: If model is not supported
    """
    pricing = table.get_pricing(model)

    total = (
        Decimal(usage.prompt_tokens) * pricing.input_per_1m
        + Decimal(usage.completion_tokens) * pricing.output_per_1m
        + Decimal(usage.cache_creation_tokens) * pricing.input_per_1m
        + Decimal(usage.cache_read_tokens) * pricing.cached_per_1m
    ) / ONE_MILLION

    return float(total)


def calculate_cost(record: UsageRecord, table: Optional[PricingTable] = None) -> float:
    """Cost of a usage record.

    A cost already present on the record wins. Unknown models cost nothing,
    and batch API records get the table's batch discount.

    Args:
        record: Usage record to price
        table: Pricing table to use (defaults to ``PRICING_TABLE``)

    Returns:
        Cost in dollars
    """
    if record.cost is not None:
        return float(record.cost)

    table = table or PRICING_TABLE
    if not table.supports(record.model):
        logger.debug("No pricing for model %s; counting zero cost", record.model)
        return 0.0

    try:
        cost = calculate_token_cost(record.model, TokenUsage.from_record(record), table)
    except (ArithmeticError, ValueError):
        # e.g. an infinite token count against a zero price
        logger.debug("Unpriceable token counts on request %s", record.request_id)
        return 0.0

    if record.is_batch_api:
        cost *= float(1 - table.batch_api_discount)
    return cost
