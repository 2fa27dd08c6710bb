"""
Trade Statistics
Win/loss summary over the closed-trade history.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from core.models import TradeRecord


@dataclass(frozen=True)
class TradeStats:
    total: int = 0
    wins: int = 0
    losses: int = 0
    total_profit: Decimal = Decimal("0")
    total_stake: Decimal = Decimal("0")

    @property
    def win_rate(self) -> float:
        """Percentage of trades that made money (0 when there are none)."""
        return round(self.wins / self.total * 100, 1) if self.total else 0.0

    @property
    def is_profitable(self) -> bool:
        return self.total_profit >= 0


def summarize_trades(trades: Sequence[TradeRecord]) -> TradeStats:
    # Break-even trades count towards the total only
    return TradeStats(
        total=len(trades),
        wins=sum(1 for t in trades if t.profit > 0),
        losses=sum(1 for t in trades if t.profit < 0),
        total_profit=sum((t.profit for t in trades), Decimal("0")),
        total_stake=sum((t.stake for t in trades), Decimal("0")),
    )
