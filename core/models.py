"""
Domain Models
Canonical records produced by the normalizer and consumed by the risk engine.

Money is Decimal, time is timezone-aware UTC datetime. Numeric and epoch
inputs are coerced on construction so every record is typed once it exists.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

UNKNOWN_SYMBOL = "UNKNOWN"
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

Number = Union[Decimal, int, float, str, None]
Timestamp = Union[datetime, int, float, None]


def to_decimal(value: Number) -> Decimal:
    """Coerce a loosely-typed upstream number to Decimal (0 when unusable)."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def to_datetime(value: Timestamp) -> datetime:
    """Coerce epoch seconds or a naive datetime to an aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if value is None or isinstance(value, bool):
        return EPOCH
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (OverflowError, OSError, TypeError, ValueError):
        return EPOCH


def _coerce(obj, decimals=(), timestamps=()):
    for name in decimals:
        object.__setattr__(obj, name, to_decimal(getattr(obj, name)))
    for name in timestamps:
        object.__setattr__(obj, name, to_datetime(getattr(obj, name)))


# ── Enumerations ─────────────────────────────────────────────────────────────

class Severity(Enum):
    """Finding severity."""
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(Enum):
    """Overall risk level derived from the composite score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FindingKind(Enum):
    """The fixed battery of risk findings."""
    MARTINGALE = "martingale"
    OVERTRADING = "overtrading"
    LOSS_STREAK = "loss_streak"
    BOT_RISK = "bot_risk"
    POSITION_SIZING = "position_sizing"


# ── Account & Trading Records ────────────────────────────────────────────────

@dataclass(frozen=True)
class TradeRecord:
    """A closed contract from the profit table."""
    id: str
    symbol: str
    contract_type: str
    stake: Decimal
    profit: Decimal
    purchase_time: datetime
    close_time: datetime
    raw_shortcode: str = ""
    raw_longcode: str = ""

    def __post_init__(self):
        _coerce(self, ("stake", "profit"), ("purchase_time", "close_time"))

    @property
    def is_loss(self) -> bool:
        return self.profit < 0


@dataclass(frozen=True)
class Position:
    """An open contract from the portfolio."""
    id: str
    symbol: str
    contract_type: str
    stake: Decimal
    current_profit: Decimal
    payout: Decimal
    opened_at: datetime
    expires_at: datetime
    currency: str = ""
    longcode: str = ""

    def __post_init__(self):
        _coerce(self, ("stake", "current_profit", "payout"), ("opened_at", "expires_at"))


@dataclass(frozen=True)
class BalanceSnapshot:
    """Account balance; last write wins between poll and push."""
    amount: Decimal
    currency: str = ""
    login_id: str = ""

    def __post_init__(self):
        _coerce(self, ("amount",))


@dataclass(frozen=True)
class LedgerEntry:
    """A statement transaction originated by an automation platform."""
    id: str
    action_type: str
    amount: Decimal
    balance_after: Decimal
    contract_id: str
    longcode: str
    shortcode: str
    transaction_time: datetime
    app_id: int

    def __post_init__(self):
        _coerce(self, ("amount", "balance_after"), ("transaction_time",))


@dataclass(frozen=True)
class Identity:
    """Account identity returned by authorization."""
    login_id: str
    currency: str
    balance: Decimal
    email: str = ""
    country: str = ""

    def __post_init__(self):
        _coerce(self, ("balance",))


# ── Finding Evidence ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StakeEscalation:
    """One stake increase that followed a losing trade."""
    previous_stake: Decimal
    current_stake: Decimal
    increase_pct: float


@dataclass(frozen=True)
class MartingaleEvidence:
    count: int
    instances: Tuple[StakeEscalation, ...]


@dataclass(frozen=True)
class OvertradingEvidence:
    count: int
    window_seconds: int


@dataclass(frozen=True)
class LossStreakEvidence:
    streak: int
    total_loss: Decimal


@dataclass(frozen=True)
class BotRiskEvidence:
    strategy: str
    keyword: str
    transaction_count: int


@dataclass(frozen=True)
class PositionSizingEvidence:
    stake_percentage: float
    average_stake: Decimal
    balance: Decimal
    suggested_max_stake: Decimal


Evidence = Union[
    MartingaleEvidence, OvertradingEvidence, LossStreakEvidence,
    BotRiskEvidence, PositionSizingEvidence,
]


# ── Findings & Report ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskFinding:
    """A single detector result. Produced fresh every analysis cycle."""
    kind: FindingKind
    severity: Severity
    evidence: Evidence
    message: str
    explanation_seed: str
    recommendation: str

    @property
    def is_high(self) -> bool:
        return self.severity is Severity.HIGH


@dataclass(frozen=True)
class RiskReport:
    """Composite assessment. Fully recomputed each cycle."""
    score: int
    level: RiskLevel
    findings: Tuple[RiskFinding, ...] = field(default_factory=tuple)

    @property
    def color(self) -> str:
        return {RiskLevel.LOW: "green", RiskLevel.MEDIUM: "yellow", RiskLevel.HIGH: "red"}[self.level]

    @property
    def kinds(self) -> Tuple[FindingKind, ...]:
        return tuple(f.kind for f in self.findings)

    def finding(self, kind: FindingKind) -> Optional[RiskFinding]:
        return next((f for f in self.findings if f.kind is kind), None)

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


# ── Serialization ────────────────────────────────────────────────────────────

def to_jsonable(obj: Any) -> Any:
    """Convert records, enums, Decimals and datetimes to JSON-ready values."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        items = sorted(obj) if isinstance(obj, (set, frozenset)) else obj
        return [to_jsonable(v) for v in items]
    return obj
