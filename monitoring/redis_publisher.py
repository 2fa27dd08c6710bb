"""
Redis Snapshot Publisher
Keeps the latest RiskSnapshot in Redis and announces each one on a channel,
so dashboards and other processes can follow the coach without a socket of
their own.

Keys:
  <prefix>:snapshot   latest snapshot JSON
  <prefix>:updates    pub/sub channel, one message per cycle
"""
import json
from typing import Optional

import redis
from loguru import logger

from config import RedisConfig


def init_redis(cfg: Optional[RedisConfig] = None) -> Optional[redis.Redis]:
    rc = cfg or RedisConfig()
    try:
        c = redis.Redis(host=rc.host, port=rc.port, db=rc.db,
                        decode_responses=True, socket_connect_timeout=5)
        c.ping(); logger.info("Redis connected"); return c
    except Exception as e:
        logger.warning(f"Redis failed: {e}"); return None


class RedisSnapshotPublisher:
    def __init__(self, client: redis.Redis, key_prefix: str = "risk_coach", ttl_sec: Optional[int] = None):
        self.client = client
        self.key_prefix = key_prefix
        self.ttl_sec = ttl_sec
        self.published = 0
        self.failures = 0

    @property
    def snapshot_key(self) -> str:
        return f"{self.key_prefix}:snapshot"

    @property
    def channel(self) -> str:
        return f"{self.key_prefix}:updates"

    def publish(self, snapshot) -> bool:
        payload = json.dumps(snapshot.to_dict())
        try:
            self.client.set(self.snapshot_key, payload, ex=self.ttl_sec)
            self.client.publish(self.channel, payload)
        except redis.RedisError as e:
            self.failures += 1
            logger.warning(f"Redis publish failed (cycle {snapshot.cycle}): {e}")
            return False
        self.published += 1
        logger.debug(f"Redis: snapshot {snapshot.cycle} → {self.snapshot_key}")
        return True

    def latest(self) -> Optional[dict]:
        """Read back the stored snapshot, or None when absent."""
        raw = self.client.get(self.snapshot_key)
        return json.loads(raw) if raw else None
