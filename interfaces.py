"""
Protocol interfaces for dependency injection (DIP — Dependency Inversion Principle).

The orchestrator and the container depend on these abstractions, not on
concrete implementations. This allows swapping the live WebSocket ↔ an
in-memory loopback, or the HTTP explainer ↔ a canned one, without touching
the polling or analysis logic.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable


# ── Transport ────────────────────────────────────────────────────────────────

@runtime_checkable
class ITransport(Protocol):
    """One bidirectional text-frame channel."""

    async def open(self) -> None: ...

    async def send(self, text: str) -> None: ...

    async def recv(self) -> str: ...

    async def close(self) -> None: ...

    @property
    def is_open(self) -> bool: ...


# ── Risk Analysis ────────────────────────────────────────────────────────────

@runtime_checkable
class IRiskEngine(Protocol):
    """Turns one batch of normalized records into a RiskReport."""

    def analyze(self, trades: Sequence[Any], positions: Sequence[Any] = (),
                bot_ledger: Sequence[Any] = (), balance: Any = None,
                now: Optional[datetime] = None) -> Any: ...

    def get_stats(self) -> Dict[str, Any]: ...


# ── Explanations ─────────────────────────────────────────────────────────────

@runtime_checkable
class IExplainer(Protocol):
    """Produces plain-language explanations for findings."""

    async def explain(self, finding: Any, recent_trades: Sequence[Any] = ()) -> Any: ...

    async def summarize(self, findings: List[Any], balance: Any,
                        open_positions: int) -> Any: ...


# ── Publishing ───────────────────────────────────────────────────────────────

@runtime_checkable
class IReportPublisher(Protocol):
    """
    Consumes every RiskSnapshot the orchestrator produces.

    ``publish`` may be a plain method or a coroutine function; the
    orchestrator awaits the result when it is awaitable.
    """

    def publish(self, snapshot: Any) -> Any: ...
