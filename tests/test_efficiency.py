"""
Unit tests for efficiency classification.
"""

import pytest

from ai_usage_watch.core.efficiency import (
    COST_EPSILON,
    DEFAULT_EFFICIENCY,
    EfficiencyThresholds,
    EfficiencyTier,
    classify_efficiency,
    tokens_per_cost,
)
from conftest import OPUS, SONNET


class TestThresholds:
    """Test threshold validation and family lookup."""

    def test_ordering_enforced(self):
        """Test that high below medium is rejected."""
        with pytest.raises(ValueError, match="high threshold"):
            EfficiencyThresholds(high=100, medium=200)

    def test_medium_positive(self):
        """Test that medium must be positive."""
        with pytest.raises(ValueError, match="medium"):
            EfficiencyThresholds(high=100, medium=0)

    def test_family_lookup(self):
        """Test that opus models use the opus thresholds."""
        assert DEFAULT_EFFICIENCY.get_thresholds(OPUS) == EfficiencyThresholds(8000, 4000)
        assert DEFAULT_EFFICIENCY.get_thresholds("Claude-OPUS-next") == EfficiencyThresholds(8000, 4000)

    def test_default_fallback(self):
        """Test that other models use the defaults."""
        assert DEFAULT_EFFICIENCY.get_thresholds(SONNET) == EfficiencyThresholds(15000, 8000)


class TestClassifyEfficiency:
    """Test tier assignment."""

    def setup_method(self):
        self.thresholds = DEFAULT_EFFICIENCY.defaults

    def test_high(self):
        """Test a record well above the high threshold."""
        assert classify_efficiency(20000, 1.0, self.thresholds) == EfficiencyTier.HIGH

    def test_medium(self):
        """Test a record between the thresholds."""
        assert classify_efficiency(10000, 1.0, self.thresholds) == EfficiencyTier.MEDIUM

    def test_low(self):
        """Test a record below the medium threshold."""
        assert classify_efficiency(5000, 1.0, self.thresholds) == EfficiencyTier.LOW

    def test_boundaries_are_strict(self):
        """Test that a ratio equal to a threshold falls to the lower tier."""
        assert classify_efficiency(15000, 1.0, self.thresholds) == EfficiencyTier.MEDIUM
        assert classify_efficiency(8000, 1.0, self.thresholds) == EfficiencyTier.LOW

    def test_zero_cost_uses_epsilon(self):
        """Test that free records divide by the cost floor."""
        assert tokens_per_cost(10, 0.0) == pytest.approx(10 / COST_EPSILON)
        assert classify_efficiency(10, 0.0, self.thresholds) == EfficiencyTier.MEDIUM

    def test_zero_tokens_low(self):
        """Test that a record with no tokens is low efficiency."""
        assert classify_efficiency(0, 0.0, self.thresholds) == EfficiencyTier.LOW

    def test_non_finite_inputs(self):
        """Test that NaN inputs are treated as zero."""
        assert tokens_per_cost(float("nan"), 1.0) == 0.0
        assert tokens_per_cost(100, float("nan")) == pytest.approx(100 / COST_EPSILON)
