"""
Account Feed Client
Typed account queries on top of the shared ConnectionManager.

Every method returns normalized values; raw upstream payloads never leave
this module.
"""
from typing import Callable, List, Optional

from loguru import logger

from connection.manager import ConnectionManager
from connection.subscription import Subscription
from core.ingestion.normalizer import (
    normalize_balance,
    normalize_positions,
    normalize_profit_table,
    normalize_statement,
)
from core.models import BalanceSnapshot, LedgerEntry, Position, TradeRecord


class AccountFeedClient:
    """Balance, portfolio, profit table and statement over one connection."""

    def __init__(self, connection: ConnectionManager, trade_limit: int = 50, statement_limit: int = 50):
        self.connection = connection
        self.trade_limit = trade_limit
        self.statement_limit = statement_limit

    async def fetch_balance(self) -> BalanceSnapshot:
        response = await self.connection.request({"balance": 1})
        return normalize_balance(response)

    async def fetch_positions(self) -> List[Position]:
        response = await self.connection.request({"portfolio": 1})
        positions = normalize_positions(response)
        logger.debug(f"Feed: {len(positions)} open positions")
        return positions

    async def fetch_trades(self, limit: Optional[int] = None) -> List[TradeRecord]:
        response = await self.connection.request({
            "profit_table": 1,
            "description": 1,
            "limit": limit or self.trade_limit,
            "sort": "DESC",
        })
        trades = normalize_profit_table(response)
        logger.debug(f"Feed: {len(trades)} closed trades")
        return trades

    async def fetch_bot_ledger(self, limit: Optional[int] = None) -> List[LedgerEntry]:
        response = await self.connection.request({
            "statement": 1,
            "description": 1,
            "limit": limit or self.statement_limit,
        })
        entries = normalize_statement(response)
        logger.debug(f"Feed: {len(entries)} bot ledger entries")
        return entries

    async def subscribe_balance(
        self, on_update: Optional[Callable[[BalanceSnapshot], None]] = None,
    ) -> Subscription:
        """Live balance pushes; each event is a BalanceSnapshot."""
        return await self.connection.subscribe(
            {"balance": 1, "subscribe": 1},
            on_event=on_update,
            parse=normalize_balance,
        )
