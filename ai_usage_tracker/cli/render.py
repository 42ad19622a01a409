"""
Text and JSON rendering for the CLI.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from rich.console import Console
from rich.table import Table

from ..core.aggregator import CostSummary, TokenCostSnapshot
from ..core.orchestrator import ProviderFetchResult
from ..core.report import UsageReport
from ..providers.base import CreditsSnapshot, RateWindow, StatusIndicator

_STATUS_STYLES = {
    StatusIndicator.OPERATIONAL: "green",
    StatusIndicator.MINOR: "yellow",
    StatusIndicator.MAJOR: "red",
    StatusIndicator.CRITICAL: "bold red",
    StatusIndicator.MAINTENANCE: "blue",
    StatusIndicator.UNKNOWN: "dim",
}


def format_currency(amount: Decimal) -> str:
    """Format a dollar amount; sub-cent amounts keep four decimals."""
    if Decimal("0") < abs(amount) < Decimal("0.01"):
        return f"${amount:,.4f}"
    return f"${amount:,.2f}"


def format_tokens(count: int) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def format_reset(resets_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Describe the time until a window resets, e.g. ``2h 5m``."""
    if resets_at is None:
        return None
    now = now or datetime.now(timezone.utc)
    if resets_at.tzinfo is None:
        resets_at = resets_at.replace(tzinfo=timezone.utc)
    seconds = int((resets_at - now).total_seconds())
    if seconds <= 0:
        return "now"
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _usage_style(percent: float) -> str:
    if percent >= 90:
        return "red"
    if percent >= 70:
        return "yellow"
    return "green"


def _render_window(console: Console, label: str, window: RateWindow) -> None:
    line = f"  {label}: [{_usage_style(window.used_percent)}]{window.used_percent:.0f}% used[/]"
    reset = window.reset_description or format_reset(window.resets_at)
    if reset:
        line += f" [dim](resets in {reset})[/]"
    console.print(line)


def _render_credits(console: Console, credits: CreditsSnapshot) -> None:
    if credits.unlimited:
        console.print("  Credits: unlimited")
        return
    line = f"  Credits: {format_currency(Decimal(str(credits.remaining)))} remaining"
    if credits.used is not None and credits.limit is not None:
        line += (
            f" [dim]({format_currency(Decimal(str(credits.used)))} of "
            f"{format_currency(Decimal(str(credits.limit)))} used)[/]"
        )
    if credits.period:
        line += f" [dim]{credits.period}[/]"
    console.print(line)


def _render_cost_line(console: Console, summary: CostSummary) -> None:
    window = f"last {summary.days} days" if summary.days else "all time"
    console.print(
        f"  Cost: {format_currency(summary.today_cost)} today, "
        f"{format_currency(summary.total_cost)} {window} "
        f"[dim]({format_tokens(summary.tokens.total_tokens)} tokens)[/]"
    )


def render_result(console: Console, result: ProviderFetchResult, detailed: bool = False) -> None:
    """Print one provider block."""
    provider = result.provider
    header = f"[bold]{provider.display_name}[/]"
    if result.status is not None:
        style = _STATUS_STYLES[result.status.indicator]
        header += f" [{style}]{result.status.indicator.label}[/]"
    if result.usage is not None and result.usage.identity is not None:
        identity = result.usage.identity
        details = " · ".join(v for v in (identity.email, identity.plan) if v)
        if details:
            header += f" [dim]{details}[/]"
    console.print(header)

    if result.failure is not None:
        console.print(f"  [red]Error ({result.failure.kind.value}):[/] {result.failure.message}")
    if result.usage is not None:
        labels = (provider.session_label, provider.weekly_label, provider.tertiary_label)
        for label, window in zip(labels, (result.usage.primary, result.usage.secondary, result.usage.tertiary)):
            if window is not None:
                _render_window(console, label, window)
    if result.credits is not None:
        _render_credits(console, result.credits)
    if result.cost is not None:
        _render_cost_line(console, result.cost)
        if detailed:
            render_cost_breakdown(console, result.cost)


def render_report(console: Console, report: UsageReport) -> None:
    for index, result in enumerate(report.results):
        if index:
            console.print()
        render_result(console, result, detailed=report.detailed)
    if report.cost_error:
        console.print(f"\n[yellow]Token cost unavailable:[/] {report.cost_error}")


def render_cost_breakdown(console: Console, summary: CostSummary) -> None:
    """Print per-model and per-day tables."""
    if summary.by_model:
        table = Table(title="By model", title_justify="left", show_edge=False)
        table.add_column("Model")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for model in summary.by_model:
            cost = format_currency(model.cost.total) if model.priced else "[dim]unpriced[/]"
            table.add_row(model.model, format_tokens(model.tokens.total_tokens), cost)
        console.print(table)
    if summary.daily:
        table = Table(title="By day", title_justify="left", show_edge=False)
        table.add_column("Date")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for day in summary.daily:
            table.add_row(day.day.isoformat(), format_tokens(day.tokens.total_tokens), format_currency(day.total))
        console.print(table)


def render_cost(console: Console, snapshot: TokenCostSnapshot, detailed: bool = False) -> None:
    """Print a cost-engine-only report."""
    summary = snapshot.summary
    window = f"last {summary.days} days" if summary.days else "all time"
    console.print(f"[bold]Token cost[/] [dim]({window})[/]")
    console.print(f"  Today: {format_currency(summary.today_cost)}")
    console.print(f"  Total: {format_currency(summary.total_cost)}")
    for provider, provider_summary in snapshot.by_provider.items():
        console.print(f"  {provider.display_name}: {format_currency(provider_summary.total_cost)}")
    if snapshot.routed_cost:
        console.print(
            f"  [dim]Direct {format_currency(snapshot.direct_cost)}, "
            f"routed {format_currency(snapshot.routed_cost)}[/]"
        )
    if summary.unpriced_models:
        console.print(f"  [yellow]Unpriced models:[/] {', '.join(summary.unpriced_models)}")
    if snapshot.degraded_files:
        console.print(f"  [yellow]{len(snapshot.degraded_files)} session logs could not be read[/]")
    if detailed:
        render_cost_breakdown(console, summary)


def to_json(payload: Dict[str, Any], pretty: bool = False) -> str:
    return json.dumps(payload, indent=2 if pretty else None, sort_keys=False)
