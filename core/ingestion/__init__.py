"""
Ingestion layer — turns raw upstream responses into canonical records.

  normalizer.py   — pure mapping functions, one per upstream category
  feed_client.py  — per-category requests over the connection manager
"""
