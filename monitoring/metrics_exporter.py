"""
Risk Metrics Exporter
Exposes the coach's view of the account in Prometheus format.

All metrics live on the exporter's own CollectorRegistry so several
exporters (and test runs) never collide on the global registry.
"""
from typing import Optional

from loguru import logger
from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server

from core.models import FindingKind, RiskLevel

LEVEL_VALUES = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class RiskMetricsExporter:
    def __init__(self, port: int = 8000, registry: Optional[CollectorRegistry] = None):
        self.port = port
        self.registry = registry or CollectorRegistry()
        self._setup_metrics()
        self._is_running = False
        logger.info(f"Risk Metrics Exporter (port {port})")

    def _setup_metrics(self) -> None:
        gauge_defs = [
            ('risk_score', 'risk_coach_score', 'Composite risk score (100 = safest)'),
            ('risk_level', 'risk_coach_level', 'Risk level: 0 low, 1 medium, 2 high'),
            ('balance', 'risk_coach_balance', 'Account balance'),
            ('open_positions', 'risk_coach_open_positions', 'Number of open positions'),
            ('win_rate', 'risk_coach_win_rate', 'Win rate of closed trades, percent'),
            ('bot_score', 'risk_coach_bot_score', 'Bot likelihood score from trade timing'),
        ]
        for attr, name, desc in gauge_defs:
            setattr(self, attr, Gauge(name, desc, registry=self.registry))
        self.finding_active = Gauge(
            'risk_coach_finding_active', 'Finding present this cycle (1/0)', ['kind'],
            registry=self.registry)
        self.cycles = Counter('risk_coach_cycles', 'Refresh cycles observed', registry=self.registry)
        self.degraded_fetches = Counter(
            'risk_coach_degraded_fetches', 'Failed category fetches', ['category'],
            registry=self.registry)

    def publish(self, snapshot) -> None:
        report = snapshot.report
        self.risk_score.set(report.score)
        self.risk_level.set(LEVEL_VALUES[report.level])
        if snapshot.balance is not None:
            self.balance.set(float(snapshot.balance.amount))
        self.open_positions.set(len(snapshot.positions))
        self.win_rate.set(snapshot.trade_stats.win_rate)
        self.bot_score.set(snapshot.bot_profile.bot_score if snapshot.bot_profile else 0)
        active = set(report.kinds)
        for kind in FindingKind:
            self.finding_active.labels(kind=kind.value).set(1 if kind in active else 0)
        for category in snapshot.degraded:
            self.degraded_fetches.labels(category=category).inc()
        self.cycles.inc()

    def start(self) -> None:
        if self._is_running:
            logger.warning("Metrics exporter already running")
            return
        start_http_server(self.port, registry=self.registry)
        self._is_running = True
        logger.info(f"✓ Metrics server started on http://localhost:{self.port}/metrics")

    def render(self) -> bytes:
        return generate_latest(self.registry)

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})
