"""
Base Risk Detector
Shared shape for every pattern detector: a name, an enable switch, a
detection counter, and ``detect()`` returning an optional finding.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from loguru import logger

from config import RiskThresholds
from core.models import LedgerEntry, Position, RiskFinding, TradeRecord


@dataclass(frozen=True)
class DetectionContext:
    """One batch of normalized account data, as seen by every detector."""
    trades: Sequence[TradeRecord] = ()
    positions: Sequence[Position] = ()
    bot_ledger: Sequence[LedgerEntry] = ()
    balance: Decimal = Decimal("0")
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BaseRiskDetector(ABC):
    """
    Every detector is independent and side-effect free apart from its own
    counters. A detector that raises is treated by the engine as "no finding".
    """

    def __init__(self, name: str, thresholds: Optional[RiskThresholds] = None):
        self.name = name
        self.thresholds = thresholds or RiskThresholds()
        self._enabled = True
        self._runs = 0
        self._detections = 0

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True
        logger.info(f"Enabled {self.name} detector")

    def disable(self) -> None:
        self._enabled = False
        logger.info(f"Disabled {self.name} detector")

    def run(self, context: DetectionContext) -> Optional[RiskFinding]:
        """Count the run and the hit; subclasses implement ``detect``."""
        if not self._enabled:
            return None
        self._runs += 1
        finding = self.detect(context)
        if finding is not None:
            self._detections += 1
            logger.debug(f"{self.name}: {finding.severity.value} - {finding.message}")
        return finding

    @abstractmethod
    def detect(self, context: DetectionContext) -> Optional[RiskFinding]:
        ...

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "enabled": self._enabled,
            "runs": self._runs,
            "detections": self._detections,
        }
