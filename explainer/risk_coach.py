"""
Risk Coach
Snapshot publisher that turns findings into coaching text.

Explanations are regenerated only when the set of (kind, severity) pairs
changes and the cooldown allows it; otherwise the previous coaching stays.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Optional, Tuple

from loguru import logger

from core.models import FindingKind, RiskFinding, Severity
from explainer.ai_explainer import Explanation, RiskSummary
from explainer.cooldown import Cooldown
from interfaces import IExplainer

FindingKey = FrozenSet[Tuple[FindingKind, Severity]]


@dataclass(frozen=True)
class Coaching:
    cycle: int
    summary: RiskSummary
    explanations: Tuple[Tuple[RiskFinding, Explanation], ...] = field(default_factory=tuple)


class RiskCoach:
    def __init__(self, explainer: IExplainer, cooldown: Cooldown,
                 on_coaching: Optional[Callable[[Coaching], Any]] = None):
        self.explainer = explainer
        self.cooldown = cooldown
        self.on_coaching = on_coaching
        self.latest: Optional[Coaching] = None
        self._last_key: Optional[FindingKey] = None
        self.skipped = 0

    @staticmethod
    def _key(findings) -> FindingKey:
        return frozenset((f.kind, f.severity) for f in findings)

    async def publish(self, snapshot) -> Optional[Coaching]:
        findings = list(snapshot.report.findings)
        key = self._key(findings)
        if key == self._last_key:
            self.skipped += 1
            return None
        if not self.cooldown.try_acquire():
            self.skipped += 1
            logger.debug(f"Coach: cooldown active ({self.cooldown.remaining():.1f}s left)")
            return None

        recent = snapshot.trades[:5]
        balance = snapshot.balance.amount if snapshot.balance else 0
        explanations = await asyncio.gather(
            *(self.explainer.explain(f, recent) for f in findings)
        )
        summary = await self.explainer.summarize(findings, balance, len(snapshot.positions))

        self._last_key = key
        self.latest = Coaching(
            cycle=snapshot.cycle,
            summary=summary,
            explanations=tuple(zip(findings, explanations)),
        )
        logger.info(f"Coach: {summary.level} - {len(findings)} findings explained")
        if self.on_coaching:
            self.on_coaching(self.latest)
        return self.latest
