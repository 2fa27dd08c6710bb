#!/usr/bin/env python3
"""
Deriv Risk Coach — command line

  monitor         live session: authorize, poll, print every snapshot
  analyze FILE    offline analysis of saved raw API responses

The FILE for ``analyze`` is one JSON object holding any of the raw
``profit_table``, ``portfolio``, ``statement`` and ``balance`` responses
keyed by their category, exactly as the API returns them.
"""
import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_config
from container import ServiceContainer
from core.ingestion.normalizer import (
    normalize_balance,
    normalize_positions,
    normalize_profit_table,
    normalize_statement,
)
from core.risk_engine.bot_behavior import analyze_bot_behavior
from core.risk_engine.engine import RiskAnalysisEngine
from core.risk_engine.trade_stats import summarize_trades

app = typer.Typer(help="Trading-risk coach for Deriv accounts")
console = Console()


def _setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


# ── Rendering ────────────────────────────────────────────────────────────────

def render_report(report, balance=None, trade_stats=None, bot_profile=None, title="RISK REPORT"):
    header = f"[bold {report.color}]Score {report.score}/100 - {report.level.value.upper()} RISK[/bold {report.color}]"
    if balance is not None:
        header += f"\nBalance: {balance.amount:,.2f} {balance.currency}"
    if trade_stats is not None and trade_stats.total:
        header += (f"\nTrades: {trade_stats.total} | Wins: {trade_stats.wins} | "
                   f"Losses: {trade_stats.losses} | Win rate: {trade_stats.win_rate:.1f}% | "
                   f"P/L: {trade_stats.total_profit:+,.2f}")
    if bot_profile is not None and bot_profile.is_bot_likely:
        header += f"\n[yellow]Automated trading likely (bot score {bot_profile.bot_score}%)[/yellow]"
    console.print(Panel.fit(header, title=title, border_style=report.color))

    if not report.findings:
        console.print("[green]✓ No risky patterns detected[/green]")
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Pattern", style="cyan", width=16)
    table.add_column("Severity", width=9)
    table.add_column("Finding")
    table.add_column("Recommendation")
    for f in report.findings:
        sev = f"[red]{f.severity.value}[/red]" if f.is_high else f"[yellow]{f.severity.value}[/yellow]"
        table.add_row(f.kind.value, sev, f.message, f.recommendation)
    console.print(table)


def render_positions(positions):
    if not positions:
        return
    table = Table(title="Open positions", show_header=True, header_style="bold magenta")
    for col in ("Contract", "Symbol", "Type", "Stake", "P/L"):
        table.add_column(col)
    for p in positions:
        style = "green" if p.current_profit >= 0 else "red"
        table.add_row(p.id, p.symbol, p.contract_type, f"{p.stake:.2f}",
                      f"[{style}]{p.current_profit:+.2f}[/{style}]")
    console.print(table)


class ConsoleRenderer:
    """Snapshot publisher that prints to the terminal."""

    def publish(self, snapshot) -> None:
        console.rule(f"Cycle {snapshot.cycle} · {snapshot.timestamp:%H:%M:%S}")
        if snapshot.degraded:
            console.print(f"[yellow]⚠ stale data: {', '.join(snapshot.degraded)}[/yellow]")
        render_report(snapshot.report, snapshot.balance, snapshot.trade_stats, snapshot.bot_profile)
        render_positions(snapshot.positions)


def render_coaching(coaching) -> None:
    style = {"safe": "green", "warning": "yellow", "danger": "red"}.get(coaching.summary.level, "white")
    console.print(Panel(coaching.summary.summary, title="Coach", border_style=style))
    for finding, text in coaching.explanations:
        console.print(f"[bold]{finding.kind.value}[/bold]: {text.explanation}")
        console.print(f"  [cyan]→ {text.advice}[/cyan]")


# ── Commands ─────────────────────────────────────────────────────────────────

async def _monitor(container: ServiceContainer, token: str, cycles: int) -> int:
    orchestrator = container.orchestrator
    orchestrator.add_publisher(ConsoleRenderer())
    if container.cfg.explainer.enabled:
        container.coach.on_coaching = render_coaching
    orchestrator.add_balance_listener(
        lambda b: logger.info(f"Balance update: {b.amount:,.2f} {b.currency}"))
    try:
        await orchestrator.start(token)
        while cycles <= 0 or orchestrator.cycles < cycles:
            await asyncio.sleep(0.5)
    finally:
        await container.shutdown()
    return 0


@app.command()
def monitor(
    token: Optional[str] = typer.Option(None, "--token", "-t", help="API token (default: DERIV_API_TOKEN)"),
    cycles: int = typer.Option(0, "--cycles", "-n", help="Stop after N cycles (0 = until Ctrl-C)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """
    Watch a live account and print a risk report every refresh.

    Example:
        python cli.py monitor --token $DERIV_API_TOKEN
    """
    cfg = get_config()
    _setup_logging(log_level or cfg.log_level)
    token = token or cfg.deriv.api_token
    if not token:
        console.print("[red]No API token: pass --token or set DERIV_API_TOKEN[/red]")
        raise typer.Exit(2)

    console.print(Panel.fit("[bold cyan]DERIV RISK COACH[/bold cyan]", border_style="cyan"))
    try:
        exit_code = asyncio.run(_monitor(ServiceContainer(cfg), token, cycles))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
        exit_code = 0
    raise typer.Exit(exit_code)


@app.command()
def analyze(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file of raw responses"),
    now: Optional[float] = typer.Option(None, "--now", help="Evaluate as of this epoch time"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    log_level: str = typer.Option("WARNING", "--log-level"),
):
    """
    Analyze saved account data without connecting.

    Example:
        python cli.py analyze account_dump.json --now 1700000300
    """
    _setup_logging(log_level)
    try:
        data = json.loads(file.read_text())
    except ValueError as e:
        console.print(f"[red]Invalid JSON in {file}: {e}[/red]")
        raise typer.Exit(1)

    trades = normalize_profit_table(data)
    positions = normalize_positions(data)
    ledger = normalize_statement(data)
    balance = normalize_balance(data)
    moment = datetime.fromtimestamp(now, tz=timezone.utc) if now is not None else None

    report = RiskAnalysisEngine(get_config().risk).analyze(trades, positions, ledger, balance, now=moment)
    if as_json:
        console.print_json(json.dumps(report.to_dict()))
        raise typer.Exit(0)

    render_report(report, balance, summarize_trades(trades), analyze_bot_behavior(trades),
                  title=file.name)
    render_positions(positions)
    raise typer.Exit(0)


if __name__ == "__main__":
    app()
