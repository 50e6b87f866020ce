"""
Terminal rendering of live snapshots.
"""

from datetime import datetime, tzinfo
from typing import List, Optional, Sequence

from rich.console import Group
from rich.table import Table
from rich.text import Text

from ai_usage_watch.core.buckets import BucketSlice
from ai_usage_watch.core.clock import to_local, utcnow
from ai_usage_watch.core.efficiency import EfficiencyTier
from ai_usage_watch.core.snapshot import ConversationEfficiencyEvent, LiveSnapshot
from ai_usage_watch.storage.models import DailyUsage

HIGH_BURN_ALERT_PERCENT = 50.0
HIGH_AVERAGE_COST = 50.0
RECENT_ROWS = 5

_SPARK_CHARS = "▁▂▃▄▅▆▇█"
_TIER_MARKS = {
    EfficiencyTier.HIGH: "⭐⭐⭐",
    EfficiencyTier.MEDIUM: "⭐⭐",
    EfficiencyTier.LOW: "⭐",
}


def format_tokens(tokens: int) -> str:
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.2f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)


def format_currency(amount: float, places: int = 2) -> str:
    return f"${amount:,.{places}f}"


def format_time_ago(timestamp: datetime, now: datetime, tz: Optional[tzinfo] = None) -> str:
    minutes = int((now - timestamp).total_seconds() // 60)
    if minutes < 1:
        return "now"
    if minutes < 60:
        return f"{minutes}min ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}hr ago"
    return to_local(timestamp, tz).strftime("%Y-%m-%d")


def sparkline(slices: Sequence[BucketSlice]) -> str:
    values = [s.tokens for s in slices]
    peak = max(values, default=0)
    if peak <= 0:
        return _SPARK_CHARS[0] * len(values)
    top = len(_SPARK_CHARS) - 1
    return "".join(_SPARK_CHARS[round(v / peak * top)] for v in values)


def _burn_style(burn_rate: float) -> str:
    if burn_rate > 20:
        return "red"
    if burn_rate > 0:
        return "yellow"
    return "green"


def render_snapshot(
    snapshot: LiveSnapshot,
    recent: List[ConversationEfficiencyEvent],
    live: bool = True,
    tz: Optional[tzinfo] = None,
) -> Group:
    """Build the live display for one snapshot.

    Clock and dates are shown in ``tz``, the zone that defines "today".
    """
    now = snapshot.generated_at
    local_time = to_local(now, tz).strftime("%H:%M:%S")

    summary = Table(show_header=True, header_style="bold cyan", box=None)
    summary.add_column("")
    summary.add_column("Tokens", justify="right")
    summary.add_column("Cost", justify="right")
    summary.add_row("Today", format_tokens(snapshot.today_tokens), format_currency(snapshot.today_cost))
    summary.add_row("This week", format_tokens(snapshot.week_tokens), format_currency(snapshot.week_cost))

    sign = "+" if snapshot.burn_rate > 0 else ""
    burn = Text.assemble(
        "Burn rate: ",
        (f"{sign}{snapshot.burn_rate:.1f}%", _burn_style(snapshot.burn_rate)),
        f" ({snapshot.trend.value})  ",
        f"Conversations today: {snapshot.conversations_today}  ",
        f"Avg/conversation: {format_currency(snapshot.average_cost_per_conversation)}",
    )

    parts = [
        Text.assemble(("LIVE USAGE MONITOR", "bold blue"), (f" ({local_time})", "dim")),
        summary,
        burn,
        Text(f"Last 2h  {sparkline(snapshot.fine_series)}", style="dim"),
    ]

    if snapshot.last_record_model:
        parts.append(Text(
            f"Last record: {snapshot.last_record_model} | "
            f"{format_currency(snapshot.last_record_cost, 4)}"
        ))

    if recent:
        activity = Table(title="Recent Activity", show_header=False, box=None)
        for event in reversed(recent[-RECENT_ROWS:]):
            activity.add_row(
                format_time_ago(event.timestamp, now, tz),
                event.model,
                format_currency(event.cost, 4),
                _TIER_MARKS[event.tier],
            )
        parts.append(activity)

    if snapshot.burn_rate > HIGH_BURN_ALERT_PERCENT:
        parts.append(Text("HIGH BURN RATE ALERT: consider a cheaper model for simpler tasks", style="bold red"))
    elif snapshot.average_cost_per_conversation > HIGH_AVERAGE_COST:
        parts.append(Text("Average conversation cost is high: consider breaking down complex tasks", style="yellow"))

    if live:
        parts.append(Text("Press Ctrl+C to stop monitoring", style="dim"))
    return Group(*parts)


def render_placeholder(tz: Optional[tzinfo] = None) -> Text:
    return Text(f"Waiting for usage data... ({to_local(utcnow(), tz):%H:%M:%S})", style="dim")


def render_daily_table(usage: Sequence[DailyUsage], days: int) -> Table:
    """Per-day totals, newest first, each followed by its per-model split."""
    table = Table(title=f"Daily Usage (last {days} days)", header_style="bold cyan")
    table.add_column("Date")
    table.add_column("Model")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Conversations", justify="right")

    for day in usage:
        table.add_row(
            day.day.isoformat(),
            "[bold]all models[/]",
            format_tokens(day.tokens),
            format_currency(day.cost),
            str(len(day.conversation_ids)),
        )
        for model in sorted(day.model_tokens):
            table.add_row(
                "",
                model,
                format_tokens(day.model_tokens[model]),
                format_currency(day.model_costs[model]),
                "",
            )
        table.add_section()
    return table
