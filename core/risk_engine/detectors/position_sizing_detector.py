"""
Position Sizing Detector
Average stake of the most recent trades as a share of the account balance.
"""
from decimal import Decimal
from typing import Optional

from core.models import FindingKind, PositionSizingEvidence, RiskFinding, Severity, to_decimal
from core.risk_engine.detectors.base_detector import BaseRiskDetector, DetectionContext

_CENT = Decimal("0.01")


class PositionSizingDetector(BaseRiskDetector):

    def __init__(self, thresholds=None):
        super().__init__("PositionSizing", thresholds)

    def detect(self, context: DetectionContext) -> Optional[RiskFinding]:
        t = self.thresholds
        balance = context.balance
        if not context.trades or balance <= 0:
            return None

        recent = context.trades[:t.position_sizing_window]
        average_stake = sum((trade.stake for trade in recent), Decimal("0")) / len(recent)
        stake_pct = average_stake / balance * 100
        if stake_pct <= to_decimal(t.position_sizing_medium_pct):
            return None

        high = stake_pct > to_decimal(t.position_sizing_high_pct)
        suggested = (balance * to_decimal(t.recommended_stake_pct) / 100).quantize(_CENT)
        return RiskFinding(
            kind=FindingKind.POSITION_SIZING,
            severity=Severity.HIGH if high else Severity.MEDIUM,
            evidence=PositionSizingEvidence(
                stake_percentage=round(float(stake_pct), 1),
                average_stake=average_stake.quantize(_CENT),
                balance=balance,
                suggested_max_stake=suggested,
            ),
            message=f"Average stake is {stake_pct:.1f}% of account balance - Too high",
            explanation_seed="Risk management experts recommend never risking more than 1-2% per trade.",
            recommendation=f"Reduce your stake to ${suggested} or less per trade.",
        )
