"""
Polling Orchestrator
Periodic refresh cycle over one authorized connection.

Each cycle:
  1. Fetch positions, trades, bot ledger and balance concurrently (all-of join)
  2. Keep the last good value for any category whose fetch failed
  3. Run the risk engine over the merged batch
  4. Hand the resulting RiskSnapshot to every registered publisher

Balance pushes from the single live subscription update the balance
between cycles (last write wins).
"""
import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from connection.subscription import Subscription
from core.ingestion.feed_client import AccountFeedClient
from core.models import (
    BalanceSnapshot,
    Identity,
    LedgerEntry,
    Position,
    RiskReport,
    TradeRecord,
    to_jsonable,
)
from core.risk_engine.bot_behavior import BotBehaviorProfile, analyze_bot_behavior
from core.risk_engine.trade_stats import TradeStats, summarize_trades
from interfaces import IReportPublisher, IRiskEngine

CATEGORIES = ("positions", "trades", "bot_ledger", "balance")

BalanceListener = Callable[[BalanceSnapshot], Any]


class OrchestratorError(RuntimeError):
    """Raised for lifecycle misuse (double start)."""


@dataclass(frozen=True)
class RiskSnapshot:
    """Everything one cycle produced. This is what publishers receive."""
    cycle: int
    timestamp: datetime
    report: RiskReport
    trades: Tuple[TradeRecord, ...] = ()
    positions: Tuple[Position, ...] = ()
    bot_ledger: Tuple[LedgerEntry, ...] = ()
    balance: Optional[BalanceSnapshot] = None
    identity: Optional[Identity] = None
    degraded: Tuple[str, ...] = ()
    trade_stats: TradeStats = field(default_factory=TradeStats)
    bot_profile: Optional[BotBehaviorProfile] = None

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)

    def to_dict(self) -> Dict[str, Any]:
        data = to_jsonable(self)
        data["report"]["color"] = self.report.color
        data["trade_stats"]["win_rate"] = self.trade_stats.win_rate
        if self.bot_profile is not None:
            data["bot_profile"]["is_bot_likely"] = self.bot_profile.is_bot_likely
        return data


class PollingOrchestrator:
    """
    Usage:
        orchestrator = PollingOrchestrator(feed, engine, refresh_interval=10)
        orchestrator.add_publisher(coach)
        first = await orchestrator.start(token)
        ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        feed: AccountFeedClient,
        engine: IRiskEngine,
        refresh_interval: float = 10.0,
        publishers: Optional[List[IReportPublisher]] = None,
    ):
        self.feed = feed
        self.engine = engine
        self.refresh_interval = refresh_interval
        self.publishers: List[IReportPublisher] = list(publishers or [])
        self._balance_listeners: List[BalanceListener] = []

        self._started = False
        self._task: Optional[asyncio.Task] = None
        self._balance_sub: Optional[Subscription] = None

        # Last known good values per category
        self._positions: Tuple[Position, ...] = ()
        self._trades: Tuple[TradeRecord, ...] = ()
        self._bot_ledger: Tuple[LedgerEntry, ...] = ()
        self._balance: Optional[BalanceSnapshot] = None
        self.identity: Optional[Identity] = None

        self.cycles = 0
        self.degraded_fetches = 0
        self.last_snapshot: Optional[RiskSnapshot] = None
        logger.info(f"Polling orchestrator (every {refresh_interval}s, {len(self.publishers)} publishers)")

    # ── Registration ─────────────────────────────────────────────────────

    def add_publisher(self, publisher: IReportPublisher) -> None:
        self.publishers.append(publisher)

    def add_balance_listener(self, listener: BalanceListener) -> None:
        self._balance_listeners.append(listener)

    @property
    def balance(self) -> Optional[BalanceSnapshot]:
        return self._balance

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, token: str) -> RiskSnapshot:
        """
        Connect if needed, authorize, open the balance subscription and run the
        first cycle. Authorization errors propagate unchanged.
        """
        if self._started:
            raise OrchestratorError("orchestrator already started; one balance subscription per session")
        connection = self.feed.connection
        if not connection.is_connected:
            await connection.connect()
        if connection.is_authorized:
            self.identity = connection.identity
        else:
            self.identity = await connection.authorize(token)

        self._started = True
        try:
            self._balance_sub = await self.feed.subscribe_balance(self._on_balance)
        except Exception:
            self._started = False
            raise

        snapshot = await self.run_cycle()
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"✓ Orchestrator started for {self.identity.login_id if self.identity else '?'}")
        return snapshot

    async def stop(self) -> None:
        """Cancel the loop and the subscription, then disconnect."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._balance_sub is not None:
            self._balance_sub.cancel()
            self._balance_sub = None
        await self.feed.connection.disconnect()
        self._started = False
        logger.info(f"Orchestrator stopped after {self.cycles} cycles")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Refresh cycle failed: {e}")

    # ── Cycle ────────────────────────────────────────────────────────────

    async def run_cycle(self) -> RiskSnapshot:
        results = await asyncio.gather(
            self.feed.fetch_positions(),
            self.feed.fetch_trades(),
            self.feed.fetch_bot_ledger(),
            self.feed.fetch_balance(),
            return_exceptions=True,
        )

        degraded: List[str] = []
        for category, result in zip(CATEGORIES, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                degraded.append(category)
                logger.warning(f"⚠️ {category} fetch failed, keeping last known value: {result}")
                continue
            self._store(category, result)
        self.degraded_fetches += len(degraded)

        report = self.engine.analyze(
            self._trades, self._positions, self._bot_ledger, self._balance,
        )
        self.cycles += 1
        snapshot = RiskSnapshot(
            cycle=self.cycles,
            timestamp=datetime.now(timezone.utc),
            report=report,
            trades=self._trades,
            positions=self._positions,
            bot_ledger=self._bot_ledger,
            balance=self._balance,
            identity=self.identity,
            degraded=tuple(degraded),
            trade_stats=summarize_trades(self._trades),
            bot_profile=analyze_bot_behavior(self._trades),
        )
        self.last_snapshot = snapshot
        logger.info(
            f"Cycle {snapshot.cycle}: score={report.score} level={report.level.value} "
            f"findings={len(report.findings)} positions={len(self._positions)}"
            + (f" degraded={','.join(degraded)}" if degraded else "")
        )
        await self._publish(snapshot)
        return snapshot

    def _store(self, category: str, value: Any) -> None:
        if category == "balance":
            self._balance = value
        else:
            setattr(self, f"_{category}", tuple(value))

    async def _publish(self, snapshot: RiskSnapshot) -> None:
        for publisher in self.publishers:
            try:
                result = publisher.publish(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Publisher {type(publisher).__name__} failed: {e}")

    # ── Balance pushes ───────────────────────────────────────────────────

    def _on_balance(self, balance: BalanceSnapshot) -> None:
        self._balance = balance
        logger.debug(f"Balance push: {balance.amount} {balance.currency}")
        for listener in self._balance_listeners:
            try:
                listener(balance)
            except Exception as e:
                logger.warning(f"Balance listener failed: {e}")

    def get_stats(self) -> dict:
        return {
            "cycles": self.cycles,
            "running": self.is_running,
            "degraded_fetches": self.degraded_fetches,
            "publishers": len(self.publishers),
            "balance": float(self._balance.amount) if self._balance else None,
            "last_score": self.last_snapshot.report.score if self.last_snapshot else None,
        }
