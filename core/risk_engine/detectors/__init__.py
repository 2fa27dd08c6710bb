"""
Risk pattern detectors. Each one looks at a DetectionContext and returns
at most one RiskFinding.
"""
from core.risk_engine.detectors.base_detector import BaseRiskDetector, DetectionContext
from core.risk_engine.detectors.martingale_detector import MartingaleDetector
from core.risk_engine.detectors.overtrading_detector import OvertradingDetector
from core.risk_engine.detectors.loss_streak_detector import LossStreakDetector
from core.risk_engine.detectors.bot_risk_detector import BotRiskDetector
from core.risk_engine.detectors.position_sizing_detector import PositionSizingDetector

__all__ = [
    "BaseRiskDetector",
    "DetectionContext",
    "MartingaleDetector",
    "OvertradingDetector",
    "LossStreakDetector",
    "BotRiskDetector",
    "PositionSizingDetector",
]
