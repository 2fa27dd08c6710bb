"""
Loss Streak Detector
Length of the current run of losing trades, counted from the most recent
trade back to the first one that did not lose.
"""
from decimal import Decimal
from typing import Optional

from core.models import FindingKind, LossStreakEvidence, RiskFinding, Severity
from core.risk_engine.detectors.base_detector import BaseRiskDetector, DetectionContext


class LossStreakDetector(BaseRiskDetector):

    def __init__(self, thresholds=None):
        super().__init__("LossStreak", thresholds)

    def detect(self, context: DetectionContext) -> Optional[RiskFinding]:
        t = self.thresholds
        if len(context.trades) < t.min_trades_for_patterns:
            return None

        streak = 0
        total_loss = Decimal("0")
        for trade in context.trades:
            if not trade.is_loss:
                break  # a zero-profit trade ends the run too
            streak += 1
            total_loss += abs(trade.profit)

        if streak < t.loss_streak_min:
            return None

        return RiskFinding(
            kind=FindingKind.LOSS_STREAK,
            severity=Severity.HIGH if streak >= t.loss_streak_high else Severity.MEDIUM,
            evidence=LossStreakEvidence(streak=streak, total_loss=total_loss),
            message=f"{streak} consecutive losses totaling ${total_loss:.2f}",
            explanation_seed=(
                "Losing streaks are normal, but continuing to trade during one "
                "often makes it worse."
            ),
            recommendation="Stop trading for at least 1 hour. Review your strategy before continuing.",
        )
