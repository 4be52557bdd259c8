"""
CLI interface for Data Watchdog.

Replays recorded evaluation cycles through the engine.
"""

import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from data_watchdog.config.cycle import load_cycle_input
from data_watchdog.config.loader import (
    DEFAULT_CONFIG,
    dump_default_config,
    load_watchdog_config
)
from data_watchdog.core.drain import AlertSeverity, rank_alerts
from data_watchdog.core.engine import CycleResult, CycleVerdict, EngineState, run_cycle
from data_watchdog.core.units import format_bytes

app = typer.Typer()
console = Console()

# Exit codes - WARN is non-failing (0)
EXIT_CODE_PASS = 0
EXIT_CODE_WARN = 0
EXIT_CODE_FAIL = 1

_SEVERITY_STYLES = {
    AlertSeverity.CRITICAL: "bold red",
    AlertSeverity.HIGH: "red",
    AlertSeverity.MEDIUM: "yellow",
    AlertSeverity.LOW: "dim",
}


def _verdict_to_exit_code(verdict: CycleVerdict) -> int:
    """Convert cycle verdict to CLI exit code."""
    return {
        CycleVerdict.PASS: EXIT_CODE_PASS,
        CycleVerdict.WARN: EXIT_CODE_WARN,
        CycleVerdict.FAIL: EXIT_CODE_FAIL,
    }[verdict]


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Data Watchdog CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Data Watchdog - Use --help to see available commands")


@app.command()
def status():
    """Check that Data Watchdog is installed."""
    console.print("[green]✓[/] Data Watchdog is installed")


@app.command()
def init(
    path: str = typer.Option(
        "watchdog.yaml",
        "--path",
        "-p",
        help="Where to write the default configuration"
    )
):
    """Write the default detection configuration."""
    try:
        dump_default_config(path)
        console.print(f"[green]✓[/] Default configuration written to {path}")
        sys.exit(EXIT_CODE_PASS)
    except OSError as e:
        console.print(f"[red]Error writing configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def evaluate(
    cycle_file: str = typer.Argument(..., help="YAML file describing one cycle"),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Detection configuration file"
    ),
    limit: int = typer.Option(
        3,
        "--limit",
        "-n",
        help="Number of alerts to show"
    ),
    enforced: bool = typer.Option(
        False,
        "--enforced",
        "-e",
        help="Exit with error code if the cycle verdict is FAIL"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """
    Evaluate one recorded cycle.

    This is a read-only dry run: prior samples listed under 'history' are
    replayed into a fresh engine state, then the snapshot is evaluated.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        config = load_watchdog_config(config_path) if config_path else DEFAULT_CONFIG
        cycle = load_cycle_input(cycle_file)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    state = EngineState(config=config)
    state.replay(cycle.history)

    result = run_cycle(
        state,
        cycle.snapshot,
        bundle=cycle.bundle,
        daily_history=cycle.daily_history,
        mobile_bytes=cycle.mobile
    )

    _display_cycle_result(result, limit)

    if enforced:
        sys.exit(_verdict_to_exit_code(result.verdict))
    sys.exit(EXIT_CODE_PASS)


def _format_percent(value: float) -> str:
    return f"{value:,.1f}%"


def _join_labels(labels) -> str:
    return ", ".join(escape(label) for label in labels)


def _display_cycle_result(result: CycleResult, limit: int) -> None:
    """Display alerts, prediction and analytics."""
    console.print("\n[bold]Data Usage Evaluation[/bold]")
    console.print("-" * 40)

    if not result.alerts:
        console.print("\n[dim]No drain alerts.[/]")
    else:
        table = Table(title=f"Top alerts ({min(limit, len(result.alerts))} of {len(result.alerts)})")
        table.add_column("App")
        table.add_column("Severity")
        table.add_column("Details")
        table.add_column("Recommendation")
        for alert in rank_alerts(result.alerts, limit):
            style = _SEVERITY_STYLES[alert.severity]
            table.add_row(
                escape(alert.app_id),
                f"[{style}]{alert.severity.name}[/]",
                escape(alert.message),
                escape(alert.recommendation)
            )
        console.print(table)

    prediction = result.prediction
    if prediction is not None:
        console.print("\n[bold]Bundle forecast[/bold]")
        if prediction.will_exceed_limit:
            console.print(f"[red]Will exceed limit[/] by {format_bytes(prediction.projected_overage)}")
        else:
            console.print(f"[green]Within limit[/], projected savings {format_bytes(prediction.projected_savings)}")
        console.print(f"Days to exhaustion: {prediction.days_to_exhaustion}")
        console.print(f"Recommended daily budget: {format_bytes(prediction.recommended_daily_budget)}")
        console.print(f"Trend: {prediction.trend.value}")
        console.print(f"Confidence: {_format_percent(prediction.confidence * 100)}")
        if result.exhaustion_at is not None:
            console.print(f"At the current pace the bundle runs out at {result.exhaustion_at:%Y-%m-%d %H:%M}")

    analytics = result.analytics
    if analytics is not None and analytics.peak_days:
        console.print("\n[bold]Usage patterns[/bold]")
        console.print(f"Average daily usage: {format_bytes(analytics.average_daily_usage)}")
        console.print(f"Peak days: {_join_labels(analytics.peak_days)}")
        console.print(f"Light days: {_join_labels(analytics.light_days)}")
        console.print(f"Weekday/weekend ratio: {analytics.weekday_weekend_ratio:.2f}")
        console.print(f"Efficiency score: {analytics.data_efficiency_score:.2f}")

    console.print(f"\n[bold]Verdict:[/bold] {result.verdict.name}")


if __name__ == "__main__":
    app()
