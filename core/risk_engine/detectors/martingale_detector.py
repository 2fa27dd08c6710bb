"""
Martingale Detector
Flags stake escalation after losing trades.

Trades arrive most-recent-first. Adjacent pairs are compared in that scan
order: a pair counts when the earlier-listed trade lost and the next-listed
trade's stake is at least ``martingale_multiplier`` times its stake.
"""
from typing import List, Optional

from core.models import (
    FindingKind,
    MartingaleEvidence,
    RiskFinding,
    Severity,
    StakeEscalation,
    to_decimal,
)
from core.risk_engine.detectors.base_detector import BaseRiskDetector, DetectionContext


class MartingaleDetector(BaseRiskDetector):

    def __init__(self, thresholds=None):
        super().__init__("Martingale", thresholds)

    def detect(self, context: DetectionContext) -> Optional[RiskFinding]:
        t = self.thresholds
        trades = context.trades
        if len(trades) < t.min_trades_for_patterns:
            return None

        recent = trades[:t.martingale_window]
        instances: List[StakeEscalation] = []
        for previous, current in zip(recent, recent[1:]):
            if previous.profit >= 0 or previous.stake <= 0:
                continue
            if current.stake >= previous.stake * to_decimal(t.martingale_multiplier):
                instances.append(StakeEscalation(
                    previous_stake=previous.stake,
                    current_stake=current.stake,
                    increase_pct=round(float(current.stake / previous.stake - 1) * 100, 1),
                ))

        count = len(instances)
        if count < t.martingale_occurrences:
            return None

        return RiskFinding(
            kind=FindingKind.MARTINGALE,
            severity=Severity.HIGH,
            evidence=MartingaleEvidence(count=count, instances=tuple(instances)),
            message=f"Stake doubling detected after {count} losses - Classic Martingale pattern",
            explanation_seed=(
                "You increased your stake after losing. This is extremely risky "
                "and can wipe your account quickly."
            ),
            recommendation="Use fixed stakes or stop trading after 2-3 consecutive losses.",
        )
