"""
Tests for the CLI interface and terminal rendering.
"""

import io
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import yaml
from rich.console import Console
from typer.testing import CliRunner

from ai_usage_watch.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from ai_usage_watch.cli.render import (
    format_currency,
    format_time_ago,
    format_tokens,
    render_snapshot,
    sparkline,
)
from ai_usage_watch.core.buckets import BucketSlice
from ai_usage_watch.core.burn_rate import BurnRateTrend
from ai_usage_watch.core.snapshot import LiveSnapshot
from conftest import NOW, OPUS, SONNET, usage_line, write_lines

runner = CliRunner()


def _snapshot(**overrides):
    values = dict(
        today_tokens=1500, today_cost=1.25, week_tokens=9000, week_cost=7.5,
        burn_rate=0.0, trend=BurnRateTrend.STABLE, trailing_daily_average=1.0,
        last_record_model="claude-sonnet-4-20250514", last_record_cost=0.0123,
        conversations_today=2, average_cost_per_conversation=0.625,
        fine_series=(), hourly_series=(), daily_series=(), generated_at=NOW,
    )
    values.update(overrides)
    return LiveSnapshot(**values)


def _render_text(renderable) -> str:
    output = io.StringIO()
    Console(file=output, width=120).print(renderable)
    return output.getvalue()


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.data_dir = os.path.join(self.temp_dir, "projects")
        os.makedirs(os.path.join(self.data_dir, "project-a"))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data) -> str:
        config_path = os.path.join(self.temp_dir, "config.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_no_command_prints_hint(self):
        """Test the bare command."""
        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_CODE_PASS
        assert "--help" in result.output

    def test_summary_with_data(self):
        """Test a one-shot summary over a log directory."""
        timestamp = (datetime.now(timezone.utc) - timedelta(seconds=5)).isoformat()
        write_lines(os.path.join(self.data_dir, "project-a", "s.jsonl"), [
            usage_line(request_id="req_1", timestamp=timestamp, costUSD=0.5),
            usage_line(request_id="req_1", timestamp=timestamp, costUSD=0.5),
            "garbage",
        ])
        config_path = self._write_config({"data_paths": [self.data_dir], "timezone": "UTC"})

        result = runner.invoke(app, ["summary", "--config", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "LIVE USAGE MONITOR" in result.output
        assert "Ingestion" in result.output
        assert "Duplicates skipped" in result.output
        assert "Press Ctrl+C" not in result.output

    def test_summary_without_data(self):
        """Test the summary when no logs exist."""
        config_path = self._write_config({"data_paths": [self.data_dir]})

        result = runner.invoke(app, ["summary", "-c", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage data found" in result.output

    def test_daily_breakdown_by_model(self):
        """Test the per-day table with its per-model split."""
        today = datetime.now(timezone.utc) - timedelta(seconds=5)
        yesterday = today - timedelta(days=1)
        write_lines(os.path.join(self.data_dir, "project-a", "s.jsonl"), [
            usage_line(request_id="req_1", timestamp=today.isoformat(), model=SONNET, costUSD=0.5),
            usage_line(request_id="req_2", timestamp=today.isoformat(), model=OPUS, costUSD=2.0),
            usage_line(request_id="req_3", timestamp=yesterday.isoformat(), model=SONNET, costUSD=0.25),
        ])
        config_path = self._write_config({"data_paths": [self.data_dir], "timezone": "UTC"})

        result = runner.invoke(app, ["daily", "--days", "3", "--config", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Daily Usage (last 3 days)" in result.output
        assert today.date().isoformat() in result.output
        assert yesterday.date().isoformat() in result.output
        assert SONNET in result.output
        assert OPUS in result.output
        assert "$2.50" in result.output

    def test_daily_without_data(self):
        """Test the daily table when no logs exist."""
        config_path = self._write_config({"data_paths": [self.data_dir]})

        result = runner.invoke(app, ["daily", "-c", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage data found" in result.output

    def test_daily_rejects_zero_days(self):
        """Test that the day count must be positive."""
        config_path = self._write_config({"data_paths": [self.data_dir]})
        result = runner.invoke(app, ["daily", "--days", "0", "-c", config_path])
        assert result.exit_code != EXIT_CODE_PASS

    def test_invalid_config_fails(self):
        """Test that an invalid config exits with failure."""
        config_path = self._write_config({"unknown_key": 1})

        result = runner.invoke(app, ["summary", "--config", config_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading configuration" in result.output

    def test_missing_config_fails(self):
        """Test that a missing config file exits with failure."""
        result = runner.invoke(app, ["watch", "--config", os.path.join(self.temp_dir, "nope.yaml")])
        assert result.exit_code == EXIT_CODE_FAIL


class TestRendering:
    """Test display formatting."""

    def test_format_tokens(self):
        """Test compact token counts."""
        assert format_tokens(999) == "999"
        assert format_tokens(1500) == "1.5K"
        assert format_tokens(2_500_000) == "2.50M"

    def test_format_currency(self):
        """Test currency formatting."""
        assert format_currency(1234.5) == "$1,234.50"
        assert format_currency(0.01234, 4) == "$0.0123"

    def test_format_time_ago(self):
        """Test relative time labels."""
        assert format_time_ago(NOW - timedelta(seconds=30), NOW) == "now"
        assert format_time_ago(NOW - timedelta(minutes=5), NOW) == "5min ago"
        assert format_time_ago(NOW - timedelta(hours=3), NOW) == "3hr ago"

    def test_sparkline(self):
        """Test sparkline scaling."""
        slices = [BucketSlice(NOW, tokens, 0.0) for tokens in (0, 50, 100)]
        assert sparkline(slices) == "▁▅█"
        assert sparkline([BucketSlice(NOW, 0, 0.0)] * 3) == "▁▁▁"

    def test_high_burn_alert(self):
        """Test that a burn rate above 50% shows the alert."""
        text = _render_text(render_snapshot(_snapshot(burn_rate=75.0, trend=BurnRateTrend.INCREASING), []))
        assert "HIGH BURN RATE ALERT" in text
        assert "+75.0%" in text

    def test_no_alert_when_stable(self):
        """Test that a calm day shows no alert."""
        text = _render_text(render_snapshot(_snapshot(), []))
        assert "HIGH BURN RATE ALERT" not in text
        assert "Press Ctrl+C" in text
        assert "claude-sonnet-4-20250514" in text

    def test_clock_uses_display_timezone(self):
        """Test that the header clock follows the configured zone."""
        text = _render_text(render_snapshot(_snapshot(), [], tz=ZoneInfo("Asia/Tokyo")))
        assert "(00:30:00)" in text

    def test_old_activity_dated_in_display_timezone(self):
        """Test that day labels for older activity use the configured zone."""
        two_days_ago = NOW - timedelta(days=2)
        assert format_time_ago(two_days_ago, NOW, timezone.utc) == "2024-06-10"
        assert format_time_ago(two_days_ago, NOW, ZoneInfo("Asia/Tokyo")) == "2024-06-11"
