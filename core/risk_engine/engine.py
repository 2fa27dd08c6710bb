"""
Risk Analysis Engine
Runs the detector battery over one batch of normalized data and produces a
fresh RiskReport. Nothing carries over between calls.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from loguru import logger

from config import RiskThresholds, get_config
from core.models import (
    BalanceSnapshot,
    LedgerEntry,
    Position,
    RiskFinding,
    RiskReport,
    TradeRecord,
    to_decimal,
)
from core.risk_engine.detectors import (
    BaseRiskDetector,
    BotRiskDetector,
    DetectionContext,
    LossStreakDetector,
    MartingaleDetector,
    OvertradingDetector,
    PositionSizingDetector,
)
from core.risk_engine.scoring import RiskScorer

BalanceLike = Union[BalanceSnapshot, Decimal, int, float, str, None]


def _balance_amount(balance: BalanceLike) -> Decimal:
    if isinstance(balance, BalanceSnapshot):
        return balance.amount
    return to_decimal(balance)


class RiskAnalysisEngine:
    """
    Stateless apart from statistics.

    Usage:
        engine = RiskAnalysisEngine()
        report = engine.analyze(trades, positions, bot_ledger, balance)
        print(report.score, report.level.value)
    """

    def __init__(self, thresholds: Optional[RiskThresholds] = None):
        self.thresholds = thresholds or get_config().risk
        # Order here is the order findings appear in the report
        self.detectors: List[BaseRiskDetector] = [
            MartingaleDetector(self.thresholds),
            OvertradingDetector(self.thresholds),
            LossStreakDetector(self.thresholds),
            BotRiskDetector(self.thresholds),
            PositionSizingDetector(self.thresholds),
        ]
        self.scorer = RiskScorer(self.thresholds)
        self._analyses = 0
        logger.info(f"Initialized Risk Analysis Engine with {len(self.detectors)} detectors")

    def analyze(
        self,
        trades: Sequence[TradeRecord],
        positions: Sequence[Position] = (),
        bot_ledger: Sequence[LedgerEntry] = (),
        balance: BalanceLike = None,
        now: Optional[datetime] = None,
    ) -> RiskReport:
        context = DetectionContext(
            trades=tuple(trades or ()),
            positions=tuple(positions or ()),
            bot_ledger=tuple(bot_ledger or ()),
            balance=_balance_amount(balance),
            now=_aware(now) if now else datetime.now(timezone.utc),
        )

        findings: List[RiskFinding] = []
        for detector in self.detectors:
            try:
                finding = detector.run(context)
            except Exception as e:
                logger.error(f"{detector.name} detector failed: {e}")
                continue
            if finding is not None:
                findings.append(finding)

        score, level = self.scorer.assess(findings)
        self._analyses += 1
        return RiskReport(score=score, level=level, findings=tuple(findings))

    def get_stats(self) -> dict:
        return {
            "analyses": self._analyses,
            "detectors": [d.get_stats() for d in self.detectors],
        }


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


_default_engine: Optional[RiskAnalysisEngine] = None


def analyze(
    trades: Sequence[TradeRecord],
    positions: Sequence[Position] = (),
    bot_ledger: Sequence[LedgerEntry] = (),
    balance: BalanceLike = None,
    now: Optional[datetime] = None,
) -> RiskReport:
    """Module-level shortcut over a shared default engine."""
    global _default_engine
    if _default_engine is None:
        _default_engine = RiskAnalysisEngine()
    return _default_engine.analyze(trades, positions, bot_ledger, balance, now)
