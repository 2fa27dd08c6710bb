"""
Risk analysis engine — pure functions over a batch of normalized records.

  detectors/      — five independent pattern detectors
  scoring.py      — composite score and level mapping
  engine.py       — RiskAnalysisEngine / analyze()
  trade_stats.py  — win/loss summary of closed trades
  bot_behavior.py — automation likelihood from trade timing
"""
from core.risk_engine.engine import RiskAnalysisEngine, analyze

__all__ = ["RiskAnalysisEngine", "analyze"]
