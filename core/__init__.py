"""
Core layer — normalized domain records and the risk analysis engine.

SRP split:
  models.py       — frozen records, enums, JSON conversion
  ingestion/      — upstream payload normalization + per-category fetches
  risk_engine/    — pattern detectors, composite scoring, activity analytics
"""
