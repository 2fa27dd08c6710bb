"""
Polling orchestrator: drives the periodic fetch → analyze → publish cycle
over one authorized connection.
"""
from orchestrator.polling_orchestrator import PollingOrchestrator, RiskSnapshot

__all__ = ["PollingOrchestrator", "RiskSnapshot"]
