"""
Bot Behavior Analysis
Estimates whether closed trades were placed by automation, from the timing
and shape of the trade stream rather than from statement app ids.

Scoring:
  min interval < 2s            +30   (or < 5s  +15)
  > 50% consistent intervals   +30   (within 2s of the average)
  > 30% rapid intervals        +25   (under 5s)
  average interval < 30s       +15
  capped at 100; >= 50 means a bot is likely
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from core.models import TradeRecord

RAPID_INTERVAL_SEC = 5.0
CONSISTENCY_TOLERANCE_SEC = 2.0
BOT_LIKELY_SCORE = 50

# (label, upper bound in seconds); the last bucket is open-ended
INTERVAL_BUCKETS: Tuple[Tuple[str, float], ...] = (
    ("<5s", 5.0),
    ("5-30s", 30.0),
    ("30s-5m", 300.0),
    ("5-30m", 1800.0),
    (">30m", float("inf")),
)


@dataclass(frozen=True)
class TradingPattern:
    name: str
    description: str
    confidence: str


@dataclass(frozen=True)
class BotBehaviorProfile:
    trade_count: int
    intervals: Tuple[float, ...]
    average_interval: float
    min_interval: float
    max_interval: float
    rapid_trades: int
    consistent_trades: int
    bot_score: int
    buckets: Tuple[Tuple[str, int], ...] = ()
    patterns: Tuple[TradingPattern, ...] = field(default_factory=tuple)

    @property
    def is_bot_likely(self) -> bool:
        return self.bot_score >= BOT_LIKELY_SCORE


def _bucketize(intervals: Sequence[float]) -> Tuple[Tuple[str, int], ...]:
    counts = Counter()
    for interval in intervals:
        for label, upper in INTERVAL_BUCKETS:
            if interval < upper:
                counts[label] += 1
                break
    return tuple((label, counts[label]) for label, _ in INTERVAL_BUCKETS)


def _detect_patterns(ordered: Sequence[TradeRecord]) -> Tuple[TradingPattern, ...]:
    patterns: List[TradingPattern] = []
    count = len(ordered)

    unique_stakes = {t.stake for t in ordered}
    if len(unique_stakes) <= 3 and count > 10:
        patterns.append(TradingPattern(
            "Fixed Stake Pattern",
            f"Only {len(unique_stakes)} unique stake amounts detected",
            "high",
        ))

    assets = {t.symbol for t in ordered}
    if len(assets) == 1 and count > 10:
        patterns.append(TradingPattern(
            "Single Asset Focus", f"All trades on {next(iter(assets))}", "medium",
        ))

    peak_hour_count = max(Counter(t.purchase_time.hour for t in ordered).values())
    if peak_hour_count > count * 0.4:
        patterns.append(TradingPattern(
            "Concentrated Trading Hours", f"{peak_hour_count} trades during peak hour", "medium",
        ))

    return tuple(patterns)


def _score(intervals: Sequence[float], average: float, minimum: float,
           rapid: int, consistent: int) -> int:
    score = 0
    if minimum < 2:
        score += 30
    elif minimum < RAPID_INTERVAL_SEC:
        score += 15
    if consistent > len(intervals) * 0.5:
        score += 30
    if rapid > len(intervals) * 0.3:
        score += 25
    if average < 30:
        score += 15
    return min(score, 100)


def analyze_bot_behavior(trades: Sequence[TradeRecord]) -> Optional[BotBehaviorProfile]:
    """None for an empty history. Needs two trades for any interval signal."""
    if not trades:
        return None

    ordered = sorted(trades, key=lambda t: t.purchase_time)
    intervals = tuple(
        (later.purchase_time - earlier.purchase_time).total_seconds()
        for earlier, later in zip(ordered, ordered[1:])
    )
    average = sum(intervals) / len(intervals) if intervals else 0.0
    minimum = min(intervals) if intervals else 0.0
    maximum = max(intervals) if intervals else 0.0
    rapid = sum(1 for i in intervals if i < RAPID_INTERVAL_SEC)
    consistent = sum(1 for i in intervals if abs(i - average) < CONSISTENCY_TOLERANCE_SEC)

    return BotBehaviorProfile(
        trade_count=len(ordered),
        intervals=intervals,
        average_interval=average,
        min_interval=minimum,
        max_interval=maximum,
        rapid_trades=rapid,
        consistent_trades=consistent,
        bot_score=_score(intervals, average, minimum, rapid, consistent) if intervals else 0,
        buckets=_bucketize(intervals),
        patterns=_detect_patterns(ordered),
    )
