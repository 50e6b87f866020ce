"""
Unit tests for windowed aggregation.

Tests bucket fan-out, raw cache retention and corrupt value neutralization.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ai_usage_watch.core.aggregator import WindowedAggregator, safe_amount
from ai_usage_watch.core.dedup import IdentityWindow
from conftest import NOW, make_record


class TestSafeAmount:
    """Test numeric sanitization."""

    @pytest.mark.parametrize("value", [None, float("nan"), float("inf"), -1, -0.5, "abc"])
    def test_corrupt_values_become_zero(self, value):
        """Test that corrupt input contributes zero."""
        assert safe_amount(value) == 0.0

    def test_valid_values_pass_through(self):
        """Test that finite non-negative values are kept."""
        assert safe_amount(3) == 3.0
        assert safe_amount(0.25) == 0.25


class TestWindowedAggregator:
    """Test applying admitted records."""

    def setup_method(self):
        self.aggregator = WindowedAggregator(retention_days=30, tz=timezone.utc)

    def test_apply_updates_series_and_cache(self):
        """Test that a current record lands in every series and the cache."""
        result = self.aggregator.apply([make_record(cost=0.5)], NOW)

        assert result.bucketed == 1
        assert result.neutralized == 0
        assert len(self.aggregator.repository) == 1
        for series in self.aggregator.series:
            assert series.totals(NOW) == (150, pytest.approx(0.5))

    def test_cost_computed_when_absent(self):
        """Test that records without cost are priced from tokens."""
        result = self.aggregator.apply([make_record(prompt_tokens=1000, completion_tokens=1000)], NOW)
        # sonnet: 3 / 15 dollars per million
        assert result.priced[0].cost == pytest.approx(0.018)

    def test_custom_cost_function(self):
        """Test that an injected cost function is used."""
        aggregator = WindowedAggregator(cost_function=lambda record: 2.0, tz=timezone.utc)
        result = aggregator.apply([make_record()], NOW)
        assert result.priced[0].cost == 2.0

    def test_old_record_cached_not_bucketed(self):
        """Test that a ten day old record enters only the cache."""
        old = make_record(timestamp=NOW - timedelta(days=10), cost=1.0)
        result = self.aggregator.apply([old], NOW)

        assert result.bucketed == 0
        assert len(self.aggregator.repository) == 1
        for series in self.aggregator.series:
            assert series.totals(NOW) == (0, 0.0)

    def test_record_past_retention_dropped(self):
        """Test that a record older than retention is not cached."""
        ancient = make_record(timestamp=NOW - timedelta(days=40), cost=1.0)
        result = self.aggregator.apply([ancient], NOW)

        assert result.priced == []
        assert len(self.aggregator.repository) == 0

    def test_future_record_cached_not_bucketed(self):
        """Test that a future-dated record never lands in a bucket."""
        future = make_record(timestamp=NOW + timedelta(hours=1), cost=1.0)
        result = self.aggregator.apply([future], NOW)

        assert result.bucketed == 0
        assert len(self.aggregator.repository) == 1

    def test_nan_cost_neutralized(self):
        """Test that a NaN cost contributes zero cost."""
        result = self.aggregator.apply([make_record(cost=float("nan"))], NOW)

        assert result.neutralized == 1
        assert result.priced[0].cost == 0.0
        assert result.priced[0].tokens == 150
        tokens, cost = self.aggregator.hourly.totals(NOW)
        assert tokens == 150
        assert cost == 0.0

    def test_negative_tokens_neutralized(self):
        """Test that negative token totals contribute nothing."""
        result = self.aggregator.apply([make_record(prompt_tokens=-500, completion_tokens=50)], NOW)

        assert result.neutralized == 1
        assert result.priced[0].tokens == 0
        assert result.priced[0].cost == 0.0
        assert self.aggregator.fine.totals(NOW) == (0, 0.0)

    def test_prune(self):
        """Test that pruning evicts only records past retention."""
        self.aggregator.apply([
            make_record(request_id="old", timestamp=NOW - timedelta(days=29), cost=1.0),
            make_record(request_id="new", timestamp=NOW, cost=1.0),
        ], NOW)

        assert self.aggregator.prune(NOW + timedelta(days=2)) == 1
        assert [entry.record.request_id for entry in self.aggregator.repository.all_records()] == ["new"]

    def test_clear(self):
        """Test that clearing drops cache and series."""
        self.aggregator.apply([make_record(cost=1.0)], NOW)
        self.aggregator.clear()
        assert len(self.aggregator.repository) == 0
        assert self.aggregator.daily.totals(NOW) == (0, 0.0)

    def test_retention_validation(self):
        """Test that retention must be positive."""
        with pytest.raises(ValueError, match="retention_days"):
            WindowedAggregator(retention_days=0)

    def test_duplicate_request_counted_once(self):
        """Test that only unique records reach the hourly bucket."""
        midnight = datetime(2024, 6, 12, 0, 0, tzinfo=timezone.utc)
        records = [
            make_record(request_id="req_a", timestamp=midnight, prompt_tokens=10, completion_tokens=0),
            make_record(request_id="req_a", timestamp=midnight + timedelta(minutes=1), prompt_tokens=20, completion_tokens=0),
            make_record(request_id="req_b", timestamp=midnight + timedelta(minutes=2), prompt_tokens=40, completion_tokens=0),
        ]
        window = IdentityWindow()
        admitted = [record for record in records if window.admit(record.request_id)]

        self.aggregator.apply(admitted, NOW)

        assert len(admitted) == 2
        assert self.aggregator.hourly.slices(NOW)[0].tokens == 50

    def test_unconvertible_timestamp_rejected(self):
        """Test that a record at the calendar limit is skipped without aborting the batch."""
        edge = make_record(request_id="edge", timestamp=datetime(9999, 12, 31, 23, 0, tzinfo=timezone(timedelta(hours=-5))))
        result = self.aggregator.apply([make_record(request_id="good", cost=1.0), edge], NOW)

        assert [record.request_id for record in result.rejected] == ["edge"]
        assert [entry.record.request_id for entry in result.priced] == ["good"]
        assert self.aggregator.hourly.totals(NOW) == (150, pytest.approx(1.0))
