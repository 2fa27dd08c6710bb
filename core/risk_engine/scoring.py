"""
Risk Scorer
Composite 0-100 score from the active findings, and the score → level map.
"""
from typing import Dict, Iterable, Optional, Tuple

from loguru import logger

from config import RiskThresholds
from core.models import FindingKind, RiskFinding, RiskLevel, Severity

# (high, medium) deductions per finding kind
DEDUCTIONS: Dict[FindingKind, Tuple[int, int]] = {
    FindingKind.MARTINGALE: (40, 40),
    FindingKind.OVERTRADING: (20, 20),
    FindingKind.LOSS_STREAK: (25, 15),
    FindingKind.BOT_RISK: (30, 30),
    FindingKind.POSITION_SIZING: (25, 15),
}

MAX_SCORE = 100


class RiskScorer:
    """Higher score = safer account."""

    def __init__(self, thresholds: Optional[RiskThresholds] = None):
        self.thresholds = thresholds or RiskThresholds()

    def deduction(self, finding: RiskFinding) -> int:
        high, medium = DEDUCTIONS[finding.kind]
        return high if finding.severity is Severity.HIGH else medium

    def score(self, findings: Iterable[RiskFinding]) -> int:
        total = MAX_SCORE - sum(self.deduction(f) for f in findings)
        return max(0, min(MAX_SCORE, total))

    def level(self, score: int) -> RiskLevel:
        if score >= self.thresholds.medium_risk_score:
            return RiskLevel.LOW
        if score >= self.thresholds.high_risk_score:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    def assess(self, findings: Iterable[RiskFinding]) -> Tuple[int, RiskLevel]:
        findings = list(findings)
        score = self.score(findings)
        level = self.level(score)
        logger.debug(f"Risk score {score} ({level.value}) from {len(findings)} findings")
        return score, level
