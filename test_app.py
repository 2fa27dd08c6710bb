#!/usr/bin/env python3
"""
Test Script: Application Wiring

Tests:
1. ServiceContainer builds a working pipeline over a loopback transport
2. ServiceContainer.override rejects unknown services
3. `cli.py analyze` on a saved account dump
4. Package metadata
"""
import asyncio
import json
import tempfile
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typer.testing import CliRunner

import os
import sys
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from cli import app as cli_app
from config import AppConfig, ExplainerConfig, MetricsConfig, PollingConfig, RedisConfig
from connection.loopback import LoopbackTransport
from container import ServiceContainer
from core.models import FindingKind

app = typer.Typer()
console = Console()


def _tx(tid, buy, sell, purchase):
    return {"transaction_id": tid, "shortcode": f"CALL_R_50_{buy}_{purchase}_5T_S0P_0",
            "buy_price": buy, "sell_price": sell, "purchase_time": purchase, "sell_time": purchase + 5}


# Most recent first: two losing trades, each followed in the list by a doubled stake.
DUMP = {
    "profit_table": {"transactions": [_tx(1, 10, 0, 1700000300), _tx(2, 20, 0, 1700000200),
                                      _tx(3, 40, 80, 1700000100)]},
    "portfolio": {"contracts": []},
    "statement": {"transactions": []},
    "balance": {"balance": 1000, "currency": "USD", "loginid": "CR42"},
}


def respond(payload):
    req_id = payload.get("req_id")
    category = next(iter(payload))
    if category == "authorize":
        return {"msg_type": "authorize", "req_id": req_id,
                "authorize": {"loginid": "CR42", "currency": "USD", "balance": 1000}}
    if category in DUMP:
        return {"msg_type": category, "req_id": req_id, category: DUMP[category]}
    return None


def _config():
    return AppConfig(
        polling=PollingConfig(refresh_interval=60),
        explainer=ExplainerConfig(hf_token="", enabled=True),
        redis=RedisConfig(enabled=False),
        metrics=MetricsConfig(enabled=False),
    )


# ── Container ────────────────────────────────────────────────────────────────

def test_container_wires_pipeline():
    async def scenario():
        container = ServiceContainer(_config())
        transport = LoopbackTransport(respond)
        container.override(transport_factory=lambda url: transport)

        assert container.publishers == [container.coach]
        snapshot = await container.orchestrator.start("token")
        assert snapshot.report.kinds == (FindingKind.MARTINGALE,)
        assert container.coach.latest.cycle == 1
        assert container.coach.latest.summary.level == "danger"
        await container.shutdown()
        assert not container.connection.is_connected
        assert transport.sent_with("authorize")[0]["authorize"] == "token"
    asyncio.run(scenario())


def test_override_rejects_unknown_service():
    container = ServiceContainer(_config())
    try:
        container.override(nonsense=object())
        assert False, "expected KeyError"
    except KeyError:
        pass


# ── CLI ──────────────────────────────────────────────────────────────────────

def test_cli_analyze_dump():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmp:
        dump = Path(tmp) / "account.json"
        dump.write_text(json.dumps(DUMP))
        result = runner.invoke(cli_app, ["analyze", str(dump), "--now", "1700000400", "--json"])
        assert result.exit_code == 0, result.output
        assert '"score": 60' in result.output
        assert '"kind": "martingale"' in result.output

        result = runner.invoke(cli_app, ["analyze", str(dump), "--now", "1700000400"])
        assert result.exit_code == 0, result.output
        assert "MEDIUM RISK" in result.output

        broken = Path(tmp) / "broken.json"
        broken.write_text("{not json")
        result = runner.invoke(cli_app, ["analyze", str(broken)])
        assert result.exit_code == 1


# ── Packaging ────────────────────────────────────────────────────────────────

def test_package_metadata_points_at_project_files():
    text = (Path(__file__).parent / "pyproject.toml").read_text()
    assert 'name = "deriv-risk-coach"' in text
    assert "SPEC_FULL" not in text
    for dist in ("loguru", "websockets", "httpx", "python-dotenv", "typer", "rich", "redis",
                 "prometheus-client"):
        assert f'"{dist}>=' in text, dist


# ── Runner ───────────────────────────────────────────────────────────────────

TESTS = {
    "Container": test_container_wires_pipeline,
    "Override": test_override_rejects_unknown_service,
    "CLI analyze": test_cli_analyze_dump,
    "Packaging": test_package_metadata_points_at_project_files,
}


def _print_summary(results):
    """Print test summary table."""
    console.print("\n" + "=" * 60 + "\n[bold]SUMMARY[/bold]\n" + "=" * 60)
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", width=25)
    table.add_column("Status", width=15)
    for n, ok in results.items():
        table.add_row(n, "[green]✓[/green]" if ok else "[red]✗[/red]")
    console.print(table)
    if all(results.values()):
        console.print("[bold green]✓ ALL PASSED[/bold green]")
    else:
        console.print("[bold red]✗ SOME FAILED[/bold red]")


def run_all_tests(selected=None):
    console.print(Panel.fit("[bold cyan]APPLICATION TESTS[/bold cyan]", border_style="cyan"))
    results = {}
    for name, fn in TESTS.items():
        if selected and selected.lower() not in name.lower():
            continue
        try:
            fn()
            results[name] = True
        except Exception as e:
            console.print(f"[red]{name}: {type(e).__name__}: {e}[/red]")
            results[name] = False
    _print_summary(results)
    return 0 if results and all(results.values()) else 1


@app.command()
def run(component: str = typer.Option("all", "--component", "-c", help="Substring of a test name")):
    """Run the application wiring tests without pytest."""
    raise typer.Exit(run_all_tests(None if component == "all" else component))


if __name__ == "__main__":
    app()
