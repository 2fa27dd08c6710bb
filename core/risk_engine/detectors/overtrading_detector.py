"""
Overtrading Detector
Too many trades opened inside a short sliding window ending at ``now``.
"""
from datetime import timedelta
from typing import Optional

from core.models import FindingKind, OvertradingEvidence, RiskFinding, Severity
from core.risk_engine.detectors.base_detector import BaseRiskDetector, DetectionContext


class OvertradingDetector(BaseRiskDetector):

    def __init__(self, thresholds=None):
        super().__init__("Overtrading", thresholds)

    def detect(self, context: DetectionContext) -> Optional[RiskFinding]:
        t = self.thresholds
        if not context.trades:
            return None

        window_start = context.now - timedelta(seconds=t.overtrading_window_sec)
        count = sum(1 for trade in context.trades if trade.purchase_time > window_start)
        if count < t.overtrading_count:
            return None

        minutes = t.overtrading_window_sec // 60
        return RiskFinding(
            kind=FindingKind.OVERTRADING,
            severity=Severity.MEDIUM,
            evidence=OvertradingEvidence(count=count, window_seconds=t.overtrading_window_sec),
            message=f"{count} trades in {minutes} minutes - Possible emotional or revenge trading",
            explanation_seed=(
                "Trading too frequently often indicates emotional decisions "
                "rather than strategic thinking."
            ),
            recommendation="Take a break. Set a minimum time between trades (at least 5-10 minutes).",
        )
