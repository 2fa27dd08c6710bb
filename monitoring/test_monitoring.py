#!/usr/bin/env python3
"""
Test Script: Monitoring Sinks

Tests:
1. RedisSnapshotPublisher (key + channel, failure counting)
2. RiskMetricsExporter gauges, labels and counters
"""
from datetime import datetime, timezone
from decimal import Decimal

import redis
import typer
from prometheus_client import CollectorRegistry
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from core.models import (
    BalanceSnapshot,
    FindingKind,
    OvertradingEvidence,
    Position,
    RiskFinding,
    RiskLevel,
    RiskReport,
    Severity,
    TradeRecord,
)
from core.risk_engine.trade_stats import summarize_trades
from monitoring.metrics_exporter import RiskMetricsExporter
from monitoring.redis_publisher import RedisSnapshotPublisher
from orchestrator.polling_orchestrator import RiskSnapshot

app = typer.Typer()
console = Console()

OPENED = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    """Records the calls the publisher makes."""

    def __init__(self, fail=False):
        self.fail = fail
        self.store = {}
        self.expiry = {}
        self.messages = []

    def set(self, key, value, ex=None):
        if self.fail:
            raise redis.ConnectionError("connection refused")
        self.store[key] = value
        self.expiry[key] = ex
        return True

    def publish(self, channel, message):
        self.messages.append((channel, message))
        return 1

    def get(self, key):
        return self.store.get(key)


def _snapshot(cycle=1, degraded=()):
    finding = RiskFinding(FindingKind.OVERTRADING, Severity.MEDIUM, OvertradingEvidence(6, 300),
                          "6 trades in 5 minutes - Possible emotional or revenge trading",
                          "Rapid-fire trading.", "Take a 15-minute break.")
    trades = (
        TradeRecord("2", "R_100", "CALL", 10, 9.5, OPENED, OPENED),
        TradeRecord("1", "R_100", "PUT", 10, -10, OPENED, OPENED),
    )
    position = Position("77", "R_50", "CALL", 5, 1.25, 9.75, OPENED, OPENED)
    return RiskSnapshot(
        cycle=cycle,
        timestamp=OPENED,
        report=RiskReport(80, RiskLevel.LOW, (finding,)),
        trades=trades,
        positions=(position,),
        balance=BalanceSnapshot(Decimal("512.40"), "USD", "CR7"),
        degraded=degraded,
        trade_stats=summarize_trades(trades),
    )


# ── Redis ────────────────────────────────────────────────────────────────────

def test_redis_publisher_stores_and_announces():
    client = FakeRedis()
    publisher = RedisSnapshotPublisher(client, key_prefix="coach_test", ttl_sec=60)
    assert publisher.publish(_snapshot(cycle=4)) is True

    assert client.expiry["coach_test:snapshot"] == 60
    channel, message = client.messages[0]
    assert channel == "coach_test:updates"
    assert message == client.store["coach_test:snapshot"]

    latest = publisher.latest()
    assert latest["cycle"] == 4
    assert latest["report"]["level"] == "low"
    assert latest["report"]["color"] == "green"
    assert latest["report"]["findings"][0]["evidence"] == {"count": 6, "window_seconds": 300}
    assert latest["balance"]["amount"] == 512.4
    assert latest["trade_stats"]["win_rate"] == 50.0
    assert publisher.published == 1


def test_redis_failure_is_counted_not_raised():
    client = FakeRedis(fail=True)
    publisher = RedisSnapshotPublisher(client)
    assert publisher.publish(_snapshot()) is False
    assert publisher.failures == 1
    assert publisher.published == 0
    assert client.messages == []
    assert publisher.latest() is None


# ── Prometheus ───────────────────────────────────────────────────────────────

def test_metrics_reflect_latest_snapshot():
    exporter = RiskMetricsExporter(port=0, registry=CollectorRegistry())
    exporter.publish(_snapshot(degraded=("trades",)))
    exporter.publish(_snapshot(cycle=2, degraded=("trades", "balance")))

    assert exporter.sample("risk_coach_score") == 80.0
    assert exporter.sample("risk_coach_level") == 0.0
    assert exporter.sample("risk_coach_balance") == 512.4
    assert exporter.sample("risk_coach_open_positions") == 1.0
    assert exporter.sample("risk_coach_win_rate") == 50.0
    assert exporter.sample("risk_coach_bot_score") == 0.0
    assert exporter.sample("risk_coach_finding_active", {"kind": "overtrading"}) == 1.0
    assert exporter.sample("risk_coach_finding_active", {"kind": "martingale"}) == 0.0
    assert exporter.sample("risk_coach_cycles_total") == 2.0
    assert exporter.sample("risk_coach_degraded_fetches_total", {"category": "trades"}) == 2.0
    assert exporter.sample("risk_coach_degraded_fetches_total", {"category": "balance"}) == 1.0

    text = exporter.render().decode()
    assert "risk_coach_score 80.0" in text


def test_separate_registries_do_not_collide():
    first = RiskMetricsExporter(registry=CollectorRegistry())
    second = RiskMetricsExporter(registry=CollectorRegistry())
    first.publish(_snapshot())
    assert first.sample("risk_coach_cycles_total") == 1.0
    assert second.sample("risk_coach_cycles_total") == 0.0


# ── Runner ───────────────────────────────────────────────────────────────────

TESTS = {
    "Redis publish": test_redis_publisher_stores_and_announces,
    "Redis failure": test_redis_failure_is_counted_not_raised,
    "Metrics": test_metrics_reflect_latest_snapshot,
    "Registries": test_separate_registries_do_not_collide,
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
    console.print(Panel.fit("[bold cyan]MONITORING TESTS[/bold cyan]", border_style="cyan"))
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
    """Run the monitoring tests without pytest."""
    raise typer.Exit(run_all_tests(None if component == "all" else component))


if __name__ == "__main__":
    app()
