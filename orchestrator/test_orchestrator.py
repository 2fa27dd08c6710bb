#!/usr/bin/env python3
"""
Test Script: Polling Orchestrator

Tests:
1. Start: authorize, one balance subscription, immediate cycle
2. Degraded categories keep their last known value
3. Balance pushes and listeners
4. Publishers (sync, async, failing)
5. Periodic loop and stop
"""
import asyncio
import json
from decimal import Decimal

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import RiskThresholds
from connection.errors import AuthRejected
from connection.loopback import LoopbackTransport
from connection.manager import ConnectionManager, ConnectionState
from connection.subscription import MAX_BACKLOG
from core.ingestion.feed_client import AccountFeedClient
from core.models import FindingKind, RiskLevel
from core.risk_engine.engine import RiskAnalysisEngine
from orchestrator.polling_orchestrator import OrchestratorError, PollingOrchestrator

app = typer.Typer()
console = Console()


class FakeDeriv:
    """Loopback responder with a small, fixed account."""

    def __init__(self, auth_ok=True, fail=()):
        self.auth_ok = auth_ok
        self.fail = set(fail)
        self.balance = 1000

    def _tx(self, tid, buy, sell, purchase):
        return {"transaction_id": tid, "shortcode": f"CALL_R_50_{buy}_{purchase}_5T_S0P_0",
                "buy_price": buy, "sell_price": sell, "purchase_time": purchase,
                "sell_time": purchase + 5}

    def __call__(self, payload):
        category = next(iter(payload))
        req_id = payload.get("req_id")
        if category == "forget":
            return None
        if category in self.fail:
            return {"msg_type": category, "req_id": req_id,
                    "error": {"code": "RateLimit", "message": "Rate limit reached"}}
        if category == "authorize":
            if not self.auth_ok:
                return {"msg_type": "authorize", "req_id": req_id,
                        "error": {"code": "InvalidToken", "message": "The token is invalid."}}
            return {"msg_type": "authorize", "req_id": req_id,
                    "authorize": {"loginid": "CR42", "currency": "USD", "balance": self.balance}}
        if category == "balance":
            return {"msg_type": "balance", "req_id": req_id,
                    "balance": {"balance": self.balance, "currency": "USD", "loginid": "CR42"}}
        if category == "portfolio":
            return {"msg_type": "portfolio", "req_id": req_id, "portfolio": {"contracts": [
                {"contract_id": 501, "symbol": "R_75", "contract_type": "CALL", "buy_price": 10,
                 "payout": 19.5, "date_start": 1700000400}]}}
        if category == "profit_table":
            return {"msg_type": "profit_table", "req_id": req_id, "profit_table": {"transactions": [
                self._tx(1, 10, 0, 1700000300),
                self._tx(2, 20, 0, 1700000200),
                self._tx(3, 40, 80, 1700000100)]}}
        if category == "statement":
            return {"msg_type": "statement", "req_id": req_id, "statement": {"transactions": []}}
        return None


class Recorder:
    def __init__(self):
        self.snapshots = []

    def publish(self, snapshot):
        self.snapshots.append(snapshot)


class AsyncRecorder(Recorder):
    async def publish(self, snapshot):
        await asyncio.sleep(0)
        self.snapshots.append(snapshot)


class Broken:
    def publish(self, snapshot):
        raise RuntimeError("sink offline")


def _orchestrator(fake, publishers=None, interval=60.0):
    transport = LoopbackTransport(fake)
    manager = ConnectionManager("wss://loopback", transport_factory=lambda url: transport)
    feed = AccountFeedClient(manager, trade_limit=10, statement_limit=10)
    orchestrator = PollingOrchestrator(feed, RiskAnalysisEngine(RiskThresholds()),
                                       refresh_interval=interval, publishers=publishers)
    return orchestrator, transport, manager


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


# ── Start ────────────────────────────────────────────────────────────────────

def test_start_runs_first_cycle():
    async def scenario():
        orchestrator, transport, manager = _orchestrator(FakeDeriv())
        snapshot = await orchestrator.start("token")
        assert manager.state is ConnectionState.AUTHORIZED
        assert snapshot.cycle == 1
        assert snapshot.identity.login_id == "CR42"
        assert snapshot.degraded == ()
        assert [t.id for t in snapshot.trades] == ["1", "2", "3"]
        assert snapshot.positions[0].symbol == "R_75"
        assert snapshot.balance.amount == Decimal("1000")
        assert snapshot.report.kinds == (FindingKind.MARTINGALE,)
        assert snapshot.report.score == 60
        assert snapshot.report.level is RiskLevel.MEDIUM
        assert snapshot.trade_stats.wins == 1
        assert len(transport.sent_with("subscribe")) == 1
        assert orchestrator.is_running
        await orchestrator.stop()
    asyncio.run(scenario())


def test_second_start_is_rejected():
    async def scenario():
        orchestrator, transport, _ = _orchestrator(FakeDeriv())
        await orchestrator.start("token")
        try:
            await orchestrator.start("token")
            assert False, "expected OrchestratorError"
        except OrchestratorError:
            pass
        assert len(transport.sent_with("subscribe")) == 1
        await orchestrator.stop()
    asyncio.run(scenario())


def test_auth_failure_surfaces_unchanged():
    async def scenario():
        orchestrator, transport, manager = _orchestrator(FakeDeriv(auth_ok=False))
        try:
            await orchestrator.start("bad-token")
            assert False, "expected AuthRejected"
        except AuthRejected as e:
            assert e.code == "InvalidToken"
        assert transport.sent_with("subscribe") == []
        assert orchestrator.cycles == 0
        await manager.disconnect()
    asyncio.run(scenario())


# ── Degradation ──────────────────────────────────────────────────────────────

def test_failed_category_keeps_last_known_value():
    async def scenario():
        fake = FakeDeriv(fail={"statement"})
        orchestrator, _, _ = _orchestrator(fake)
        first = await orchestrator.start("token")
        assert first.degraded == ("bot_ledger",)
        assert first.bot_ledger == ()

        fake.fail = {"portfolio", "profit_table"}
        second = await orchestrator.run_cycle()
        assert second.cycle == 2
        assert second.degraded == ("positions", "trades")
        assert second.positions == first.positions
        assert second.trades == first.trades
        assert second.report.kinds == (FindingKind.MARTINGALE,)
        assert orchestrator.degraded_fetches == 3
        await orchestrator.stop()
    asyncio.run(scenario())


# ── Balance pushes ───────────────────────────────────────────────────────────

def test_balance_push_updates_and_notifies():
    async def scenario():
        orchestrator, transport, _ = _orchestrator(FakeDeriv())
        seen = []
        orchestrator.add_balance_listener(lambda b: seen.append(b.amount))
        orchestrator.add_balance_listener(lambda b: 1 / 0)
        await orchestrator.start("token")
        sub_id = transport.sent_with("subscribe")[0]["req_id"]
        transport.feed({"msg_type": "balance", "req_id": sub_id,
                        "balance": {"balance": 750.25, "currency": "USD"}})
        await _settle()
        assert orchestrator.balance.amount == Decimal("750.25")
        assert seen[-1] == Decimal("750.25")

        for i in range(300):
            transport.feed({"msg_type": "balance", "req_id": sub_id,
                            "balance": {"balance": i, "currency": "USD"}})
        for _ in range(1000):
            if orchestrator.balance.amount == Decimal("299"):
                break
            await asyncio.sleep(0)
        assert orchestrator.balance.amount == Decimal("299")
        assert orchestrator._balance_sub._queue.qsize() <= MAX_BACKLOG
        await orchestrator.stop()
    asyncio.run(scenario())


# ── Publishing ───────────────────────────────────────────────────────────────

def test_publishers_receive_every_snapshot():
    async def scenario():
        sync_sink, async_sink = Recorder(), AsyncRecorder()
        orchestrator, _, _ = _orchestrator(FakeDeriv(), publishers=[Broken(), sync_sink])
        orchestrator.add_publisher(async_sink)
        await orchestrator.start("token")
        await orchestrator.run_cycle()
        assert [s.cycle for s in sync_sink.snapshots] == [1, 2]
        assert [s.cycle for s in async_sink.snapshots] == [1, 2]
        data = json.loads(json.dumps(sync_sink.snapshots[-1].to_dict()))
        assert data["report"]["level"] == "medium"
        assert data["report"]["color"] == "yellow"
        assert data["balance"]["amount"] == 1000.0
        assert data["trade_stats"]["win_rate"] == 33.3
        assert data["report"]["findings"][0]["kind"] == "martingale"
        await orchestrator.stop()
    asyncio.run(scenario())


# ── Loop & stop ──────────────────────────────────────────────────────────────

def test_loop_refreshes_until_stopped():
    async def scenario():
        orchestrator, transport, manager = _orchestrator(FakeDeriv(), interval=0.01)
        await orchestrator.start("token")
        for _ in range(100):
            if orchestrator.cycles >= 3:
                break
            await asyncio.sleep(0.01)
        assert orchestrator.cycles >= 3
        await orchestrator.stop()
        cycles = orchestrator.cycles
        await asyncio.sleep(0.05)
        assert orchestrator.cycles == cycles
        assert not orchestrator.is_running
        assert manager.state is ConnectionState.DISCONNECTED
        assert len(transport.sent_with("forget")) == 1
    asyncio.run(scenario())


# ── Runner ───────────────────────────────────────────────────────────────────

TESTS = {
    "Start": test_start_runs_first_cycle,
    "Second start": test_second_start_is_rejected,
    "Auth failure": test_auth_failure_surfaces_unchanged,
    "Degraded": test_failed_category_keeps_last_known_value,
    "Balance push": test_balance_push_updates_and_notifies,
    "Publishers": test_publishers_receive_every_snapshot,
    "Loop & stop": test_loop_refreshes_until_stopped,
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
    console.print(Panel.fit("[bold cyan]ORCHESTRATOR TESTS[/bold cyan]", border_style="cyan"))
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
    """Run the orchestrator tests without pytest."""
    raise typer.Exit(run_all_tests(None if component == "all" else component))


if __name__ == "__main__":
    app()
