"""
CLI interface for AI Usage Tracker.

Provides command-line access to live provider usage, token cost and
configuration management.
"""

import asyncio
import logging
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ai_usage_tracker.config.loader import (
    AppConfig,
    ConfigError,
    config_path,
    generate_config,
    load_config,
    save_config,
)
from ai_usage_tracker.core.cost_engine import origins_for_provider, run_cost_scan
from ai_usage_tracker.core.report import build_report
from ai_usage_tracker.providers.base import Provider
from ai_usage_tracker.providers.registry import build_fetchers, build_status_fetchers

from .render import render_cost, render_report, to_json

app = typer.Typer()
config_app = typer.Typer(help="Manage the configuration file.")
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)

# Partial provider failures still exit 0
EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Send log records to stderr through rich."""
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    if debug:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    logging.getLogger("ai_usage_tracker").setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _load_config_or_exit(validate: bool = True) -> AppConfig:
    """Load the config file, exiting with a red message if it is unusable."""
    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    if validate:
        issues = config.validate()
        if issues:
            for issue in issues:
                console.print(f"[red]Error:[/] {issue}")
            console.print(f"[dim]Fix {config_path()} or run `ait config check`.[/]")
            sys.exit(EXIT_CODE_FAIL)
    return config


def _resolve_provider(provider_id: Optional[str]) -> Optional[Provider]:
    if provider_id is None:
        return None
    provider = Provider.from_id(provider_id)
    if provider is None:
        console.print(f"[red]Error:[/] Unknown provider '{provider_id}'. Run `ait providers` to list them.")
        sys.exit(EXIT_CODE_FAIL)
    return provider


def _apply_color(config: AppConfig) -> None:
    if config.settings.color == "never":
        console.no_color = True


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AI Usage Tracker CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AI Usage Tracker - Use --help to see available commands")


@app.command()
def usage(
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Only show this provider"
    ),
    all_: bool = typer.Option(
        False, "--all", "-a", help="Include the per-model and per-day cost breakdown"
    ),
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Print JSON instead of text"
    ),
    pretty: bool = typer.Option(
        False, "--pretty", help="Pretty-print JSON output"
    ),
    status: bool = typer.Option(
        False, "--status", help="Include provider health status"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show informational log messages"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Show debug log messages"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Per-provider fetch timeout in seconds"
    ),
    days: Optional[int] = typer.Option(
        None, "--days", help="Token cost window in days"
    ),
):
    """
    Show live usage, credits and token cost for each provider.

    Providers are fetched concurrently; a provider that fails or times out
    is reported on its own and does not affect the others.
    """
    configure_logging(verbose, debug)
    config = _load_config_or_exit()
    _apply_color(config)

    selected = _resolve_provider(provider)
    providers: List[Provider] = [selected] if selected else config.enabled_providers()
    if not providers:
        console.print("[yellow]No providers enabled.[/] Run `ait config add <id>` to enable one.")
        sys.exit(EXIT_CODE_PASS)

    if timeout is not None and timeout <= 0:
        console.print("[red]Error:[/] --timeout must be > 0")
        sys.exit(EXIT_CODE_FAIL)
    if days is not None and days <= 0:
        console.print("[red]Error:[/] --days must be > 0")
        sys.exit(EXIT_CODE_FAIL)

    fetchers = build_fetchers(providers, config.api_keys())
    report = asyncio.run(build_report(
        providers,
        fetchers,
        timeout=timeout or config.settings.timeout_seconds,
        include_status=status,
        cost_days=days or config.settings.cost_days,
        pricing=config.pricing_table(),
        detailed=all_,
        status_fetchers=build_status_fetchers(providers) if status else None,
    ))

    if json_output or pretty or config.settings.default_format == "json":
        typer.echo(to_json(report.to_dict(), pretty=pretty))
    else:
        render_report(console, report)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def cost(
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Only count usage billed to this provider"
    ),
    all_: bool = typer.Option(
        False, "--all", "-a", help="Include the per-model and per-day breakdown"
    ),
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Print JSON instead of text"
    ),
    pretty: bool = typer.Option(
        False, "--pretty", help="Pretty-print JSON output"
    ),
    days: Optional[int] = typer.Option(
        None, "--days", help="Window in days"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show informational log messages"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Show debug log messages"
    ),
):
    """Show token cost computed from local session logs."""
    configure_logging(verbose, debug)
    config = _load_config_or_exit()
    _apply_color(config)
    selected = _resolve_provider(provider)

    origins = origins_for_provider(selected)
    if not origins:
        console.print(f"[yellow]{selected.display_name} has no local session logs to scan.[/]")
        sys.exit(EXIT_CODE_PASS)
    if days is not None and days <= 0:
        console.print("[red]Error:[/] --days must be > 0")
        sys.exit(EXIT_CODE_FAIL)

    try:
        snapshot = run_cost_scan(
            origins=origins,
            days=days or config.settings.cost_days,
            pricing=config.pricing_table(),
            provider=selected,
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if json_output or pretty or config.settings.default_format == "json":
        typer.echo(to_json(snapshot.to_dict(detailed=all_), pretty=pretty))
    else:
        render_cost(console, snapshot, detailed=all_)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def providers():
    """List known providers and how they authenticate."""
    table = Table(show_edge=False)
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Auth")
    table.add_column("Status page")
    for provider in Provider:
        name = f"[dim]{provider.display_name}[/]" if provider.is_stub else provider.display_name
        table.add_row(provider.id, name, provider.auth_hint, provider.status_page_url or "")
    console.print(table)


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
):
    """Write a config file with Claude and Codex enabled."""
    path = config_path()
    if path.exists() and not force:
        console.print(f"[red]Error:[/] {path} already exists (use --force to overwrite)")
        sys.exit(EXIT_CODE_FAIL)
    try:
        save_config(generate_config(["claude", "codex"]), path)
    except OSError as e:
        console.print(f"[red]Error writing config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Config written to {path}")


@config_app.command("check")
def config_check():
    """Validate the config file."""
    config = _load_config_or_exit(validate=False)
    issues = config.validate()
    if issues:
        for issue in issues:
            console.print(f"[red]✗[/] {issue}")
        sys.exit(EXIT_CODE_FAIL)
    enabled = ", ".join(p.id for p in config.enabled_providers()) or "none"
    console.print(f"[green]✓[/] Config is valid (enabled: {enabled})")


def _set_enabled(provider_id: str, enabled: bool) -> None:
    config = _load_config_or_exit(validate=False)
    try:
        updated = config.with_provider_enabled(provider_id, enabled)
        path = save_config(updated)
    except ConfigError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    except OSError as e:
        console.print(f"[red]Error writing config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    action = "Enabled" if enabled else "Disabled"
    console.print(f"[green]✓[/] {action} {Provider.from_id(provider_id).display_name} in {path}")


@config_app.command("add")
def config_add(provider_id: str = typer.Argument(..., help="Provider id, e.g. openrouter")):
    """Enable a provider."""
    _set_enabled(provider_id, True)


@config_app.command("remove")
def config_remove(provider_id: str = typer.Argument(..., help="Provider id, e.g. copilot")):
    """Disable a provider."""
    _set_enabled(provider_id, False)


@config_app.command("path")
def config_path_command():
    """Print the config file location."""
    typer.echo(str(config_path()))


if __name__ == "__main__":
    app()
