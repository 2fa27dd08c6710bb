"""
Bot Risk Detector
Looks for escalating-stake strategy names in the descriptions of
bot-originated statement entries.

Keywords are tried in a fixed order and the first one found in any entry
wins. ``anti-martingale`` goes first because it contains ``martingale``.
"""
from typing import NamedTuple, Optional

from core.models import BotRiskEvidence, FindingKind, RiskFinding, Severity
from core.risk_engine.detectors.base_detector import BaseRiskDetector, DetectionContext


class RiskyStrategy(NamedTuple):
    keyword: str
    severity: Severity
    name: str


RISKY_STRATEGIES = (
    RiskyStrategy("anti-martingale", Severity.MEDIUM, "Anti-Martingale"),
    RiskyStrategy("martingale", Severity.HIGH, "Martingale"),
    RiskyStrategy("d'alembert", Severity.HIGH, "D'Alembert"),
    RiskyStrategy("grid", Severity.MEDIUM, "Grid Trading"),
)


class BotRiskDetector(BaseRiskDetector):

    def __init__(self, thresholds=None):
        super().__init__("BotRisk", thresholds)

    def detect(self, context: DetectionContext) -> Optional[RiskFinding]:
        ledger = context.bot_ledger
        if not ledger:
            return None

        descriptions = [f"{e.longcode}\n{e.shortcode}".lower() for e in ledger]
        for strategy in RISKY_STRATEGIES:
            if not any(strategy.keyword in text for text in descriptions):
                continue
            return RiskFinding(
                kind=FindingKind.BOT_RISK,
                severity=strategy.severity,
                evidence=BotRiskEvidence(
                    strategy=f"{strategy.name} DBot",
                    keyword=strategy.keyword,
                    transaction_count=len(ledger),
                ),
                message=f"Automated {strategy.name} strategy detected - High account risk",
                explanation_seed=(
                    f"{strategy.name} strategies automatically increase stakes after losses. "
                    "This can drain your account in minutes during volatility."
                ),
                recommendation=(
                    "Stop the bot immediately. Use fixed-stake strategies or manual "
                    "trading with strict limits."
                ),
            )
        return None
