"""
Snapshot publishers for outside consumers: Redis (latest snapshot + update
channel) and Prometheus metrics.
"""
