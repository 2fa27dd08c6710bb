"""
Schema Normalizer
Maps raw upstream payloads into canonical TradeRecord / Position / LedgerEntry /
BalanceSnapshot values.

Every function here is pure and never raises on missing or malformed optional
fields: absent numbers become 0, absent strings become "", absent times become
the epoch. Anything outside the synthetic-index allow-list is dropped silently.
"""
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from core.models import (
    UNKNOWN_SYMBOL,
    BalanceSnapshot,
    Identity,
    LedgerEntry,
    Position,
    TradeRecord,
    to_decimal,
)

# Synthetic indices (volatility / boom / crash / 1-second volatility)
SYNTHETIC_SYMBOLS = (
    "R_10", "R_25", "R_50", "R_75", "R_100",
    "BOOM300", "BOOM500", "BOOM1000",
    "CRASH300", "CRASH500", "CRASH1000",
    "1HZ10V", "1HZ25V", "1HZ50V", "1HZ75V", "1HZ100V",
)

# DBot application identifiers on the statement
BOT_APP_IDS = frozenset({16929, 19111})

_SYMBOL_FIELDS = ("underlying_symbol", "underlying", "symbol")
_BY_LENGTH = tuple(sorted(SYNTHETIC_SYMBOLS, key=len, reverse=True))


# ── Field helpers ────────────────────────────────────────────────────────────

def _text(raw: Dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value)


def _int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _records(response: Optional[Dict[str, Any]], category: str, key: str) -> List[Dict[str, Any]]:
    """Pull ``response[category][key]`` as a list of dicts, tolerating any shape."""
    if not isinstance(response, dict):
        return []
    body = response.get(category)
    if not isinstance(body, dict):
        return []
    items = body.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _dedupe(items: Iterable, key) -> list:
    seen = set()
    unique = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


# ── Symbols ──────────────────────────────────────────────────────────────────

def is_allowed_symbol(symbol: str) -> bool:
    return symbol in SYNTHETIC_SYMBOLS


def extract_symbol(shortcode: Optional[str]) -> str:
    """
    Extract the instrument code embedded in a contract shortcode.

    Shortcodes look like ``CALL_R_100_19.54_1700000000_5T_S0P_0``. Symbols are
    matched at ``_`` boundaries, longest first, so ``R_100`` never resolves to
    ``R_10``. Returns ``UNKNOWN`` when nothing in the allow-list matches.
    """
    if not shortcode:
        return UNKNOWN_SYMBOL
    padded = f"_{str(shortcode).upper()}_"
    for symbol in _BY_LENGTH:
        if f"_{symbol}_" in padded:
            return symbol
    return UNKNOWN_SYMBOL


def contract_type_from_shortcode(shortcode: Optional[str]) -> str:
    if not shortcode:
        return ""
    return str(shortcode).split("_", 1)[0].upper()


def _instrument_field(raw: Dict[str, Any]) -> Optional[str]:
    for name in _SYMBOL_FIELDS:
        value = raw.get(name)
        if value:
            return str(value)
    return None


# ── Closed trades (profit_table) ─────────────────────────────────────────────

def normalize_trade(raw: Dict[str, Any]) -> TradeRecord:
    """Map one profit-table transaction. Never filters; unmatched codes → UNKNOWN."""
    shortcode = _text(raw, "shortcode")
    symbol = _instrument_field(raw) or extract_symbol(shortcode)
    buy_price = to_decimal(raw.get("buy_price"))
    sell_price = to_decimal(raw.get("sell_price"))
    return TradeRecord(
        id=_text(raw, "transaction_id") or _text(raw, "contract_id"),
        symbol=symbol,
        contract_type=_text(raw, "contract_type") or contract_type_from_shortcode(shortcode),
        stake=buy_price,
        profit=sell_price - buy_price,
        purchase_time=raw.get("purchase_time"),
        close_time=raw.get("sell_time"),
        raw_shortcode=shortcode,
        raw_longcode=_text(raw, "longcode"),
    )


def _keep_trade(raw: Dict[str, Any]) -> bool:
    instrument = _instrument_field(raw)
    if instrument is None:
        return True
    return is_allowed_symbol(instrument)


def normalize_profit_table(response: Optional[Dict[str, Any]]) -> List[TradeRecord]:
    """Closed trades, allow-list filtered, de-duplicated, most recent first."""
    raw_items = _records(response, "profit_table", "transactions")
    kept = [normalize_trade(raw) for raw in raw_items if _keep_trade(raw)]
    trades = _dedupe(kept, key=lambda t: t.id or id(t))
    trades.sort(key=lambda t: t.purchase_time, reverse=True)
    dropped = len(raw_items) - len(kept)
    if dropped:
        logger.debug(f"Normalizer: dropped {dropped} non-synthetic trades")
    return trades


# ── Open positions (portfolio) ───────────────────────────────────────────────

def normalize_position(raw: Dict[str, Any]) -> Position:
    return Position(
        id=_text(raw, "contract_id"),
        symbol=_text(raw, "symbol") or extract_symbol(_text(raw, "shortcode")),
        contract_type=_text(raw, "contract_type"),
        stake=raw.get("buy_price"),
        current_profit=raw.get("profit"),
        payout=raw.get("payout"),
        opened_at=raw.get("date_start") or raw.get("purchase_time"),
        expires_at=raw.get("expiry_time"),
        currency=_text(raw, "currency"),
        longcode=_text(raw, "longcode"),
    )


def normalize_positions(response: Optional[Dict[str, Any]]) -> List[Position]:
    """Open contracts on synthetic indices; the result replaces the previous set."""
    positions = [
        normalize_position(raw)
        for raw in _records(response, "portfolio", "contracts")
        if is_allowed_symbol(_text(raw, "symbol"))
    ]
    positions = _dedupe(positions, key=lambda p: p.id or id(p))
    positions.sort(key=lambda p: p.opened_at, reverse=True)
    return positions


# ── Bot ledger (statement) ───────────────────────────────────────────────────

def normalize_ledger_entry(raw: Dict[str, Any]) -> LedgerEntry:
    return LedgerEntry(
        id=_text(raw, "transaction_id"),
        action_type=_text(raw, "action_type"),
        amount=raw.get("amount"),
        balance_after=raw.get("balance_after"),
        contract_id=_text(raw, "contract_id"),
        longcode=_text(raw, "longcode"),
        shortcode=_text(raw, "shortcode"),
        transaction_time=raw.get("transaction_time"),
        app_id=_int(raw.get("app_id")) or 0,
    )


def normalize_statement(response: Optional[Dict[str, Any]]) -> List[LedgerEntry]:
    """Statement transactions placed by known automation platforms."""
    entries = [
        normalize_ledger_entry(raw)
        for raw in _records(response, "statement", "transactions")
        if _int(raw.get("app_id")) in BOT_APP_IDS
    ]
    entries = _dedupe(entries, key=lambda e: e.id or id(e))
    entries.sort(key=lambda e: e.transaction_time, reverse=True)
    return entries


# ── Balance & identity ───────────────────────────────────────────────────────

def normalize_balance(response: Optional[Dict[str, Any]]) -> BalanceSnapshot:
    """Works for both the one-shot response and subscription pushes."""
    body = response.get("balance") if isinstance(response, dict) else None
    if not isinstance(body, dict):
        body = {}
    return BalanceSnapshot(
        amount=body.get("balance"),
        currency=_text(body, "currency"),
        login_id=_text(body, "loginid"),
    )


def normalize_identity(response: Optional[Dict[str, Any]]) -> Optional[Identity]:
    """Identity from an authorize response, or None when ``loginid`` is absent."""
    body = response.get("authorize") if isinstance(response, dict) else None
    if not isinstance(body, dict) or not body.get("loginid"):
        return None
    return Identity(
        login_id=str(body["loginid"]),
        currency=_text(body, "currency"),
        balance=body.get("balance"),
        email=_text(body, "email"),
        country=_text(body, "country"),
    )
