"""
Service Container — wires and owns all shared service instances.

SRP:  This module's only job is construction + lifecycle of shared services.
DIP:  Consumers receive interfaces (ITransport, IRiskEngine, IExplainer,
      IReportPublisher), not concrete classes.

Usage:
    container = ServiceContainer(cfg)
    orchestrator = container.orchestrator
    await orchestrator.start(cfg.deriv.api_token)

    # Tests swap the network out:
    container.override(transport_factory=lambda url: LoopbackTransport(responder))
"""
from __future__ import annotations

from typing import Callable, List, Optional

from loguru import logger

from config import AppConfig, get_config
from interfaces import IExplainer, IReportPublisher, IRiskEngine, ITransport


class ServiceContainer:
    """Owns and lazily constructs all shared service instances."""

    def __init__(self, cfg: Optional[AppConfig] = None):
        self.cfg = cfg or get_config()
        self._transport_factory: Optional[Callable[[str], ITransport]] = None
        self._connection = None
        self._feed = None
        self._risk_engine: Optional[IRiskEngine] = None
        self._orchestrator = None
        self._explainer: Optional[IExplainer] = None
        self._coach = None
        self._publishers: Optional[List[IReportPublisher]] = None
        logger.info("ServiceContainer initialised")

    # ── Lazy constructors ────────────────────────────────────────────────

    @property
    def connection(self):
        if self._connection is None:
            from connection.manager import ConnectionManager
            d = self.cfg.deriv
            self._connection = ConnectionManager(
                d.url,
                transport_factory=self._transport_factory,
                connect_timeout=d.connect_timeout,
                request_timeout=d.request_timeout,
            )
        return self._connection

    @property
    def feed(self):
        if self._feed is None:
            from core.ingestion.feed_client import AccountFeedClient
            p = self.cfg.polling
            self._feed = AccountFeedClient(
                self.connection,
                trade_limit=p.trade_history_limit,
                statement_limit=p.statement_limit,
            )
        return self._feed

    @property
    def risk_engine(self) -> IRiskEngine:
        if self._risk_engine is None:
            from core.risk_engine.engine import RiskAnalysisEngine
            self._risk_engine = RiskAnalysisEngine(self.cfg.risk)
        return self._risk_engine

    @property
    def explainer(self) -> IExplainer:
        if self._explainer is None:
            from explainer.ai_explainer import AIExplainer
            self._explainer = AIExplainer(self.cfg.explainer)
        return self._explainer

    @property
    def coach(self):
        if self._coach is None:
            from explainer.cooldown import Cooldown
            from explainer.risk_coach import RiskCoach
            self._coach = RiskCoach(self.explainer, Cooldown(self.cfg.explainer.cooldown_sec))
        return self._coach

    @property
    def publishers(self) -> List[IReportPublisher]:
        """Coach first, then whichever outside sinks the config enables."""
        if self._publishers is None:
            publishers: List[IReportPublisher] = []
            if self.cfg.explainer.enabled:
                publishers.append(self.coach)
            if self.cfg.redis.enabled:
                from monitoring.redis_publisher import RedisSnapshotPublisher, init_redis
                client = init_redis(self.cfg.redis)
                if client is not None:
                    publishers.append(RedisSnapshotPublisher(client, self.cfg.redis.key_prefix))
            if self.cfg.metrics.enabled:
                from monitoring.metrics_exporter import RiskMetricsExporter
                exporter = RiskMetricsExporter(self.cfg.metrics.port)
                exporter.start()
                publishers.append(exporter)
            self._publishers = publishers
        return self._publishers

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from orchestrator.polling_orchestrator import PollingOrchestrator
            self._orchestrator = PollingOrchestrator(
                self.feed,
                self.risk_engine,
                refresh_interval=self.cfg.polling.refresh_interval,
                publishers=self.publishers,
            )
        return self._orchestrator

    # ── Inject overrides (for testing) ───────────────────────────────────

    def override(self, **kwargs):
        """
        Override any service with a mock/stub.

        Example:
            container.override(explainer=CannedExplainer(), publishers=[])
        """
        for key, value in kwargs.items():
            attr = f"_{key}"
            if hasattr(self, attr):
                setattr(self, attr, value)
                logger.debug(f"ServiceContainer: overrode {key}")
            else:
                raise KeyError(f"Unknown service: {key}")

    async def shutdown(self) -> None:
        if self._orchestrator is not None:
            await self._orchestrator.stop()
        elif self._connection is not None:
            await self._connection.disconnect()
        close = getattr(self._explainer, "close", None)
        if close is not None:
            await close()


# ── Module-level singleton ───────────────────────────────────────────────────

_container: Optional[ServiceContainer] = None


def get_container(cfg: Optional[AppConfig] = None) -> ServiceContainer:
    """Get or create the global service container."""
    global _container
    if _container is None:
        _container = ServiceContainer(cfg)
    return _container
