"""
Explanation layer: plain-language coaching for risk findings, rate-limited by
a cooldown owned by the consumer.
"""
from explainer.ai_explainer import AIExplainer, Explanation, RiskSummary
from explainer.cooldown import Cooldown
from explainer.risk_coach import Coaching, RiskCoach

__all__ = ["AIExplainer", "Explanation", "RiskSummary", "Cooldown", "Coaching", "RiskCoach"]
