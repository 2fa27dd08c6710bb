"""
Typed configuration — single source of truth for all risk-coach settings.

SRP: This module's sole responsibility is loading and validating configuration.
All env-var reads are consolidated here; no other module should call os.getenv().
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


def _env_bool(key: str, default: str = "true") -> bool:
    return _env(key, default).lower() == "true"


def _env_int(key: str, default: str) -> int:
    return int(_env(key, default))


def _env_float(key: str, default: str) -> float:
    return float(_env(key, default))


# ── Deriv WebSocket Connection ───────────────────────────────────────────────

@dataclass(frozen=True)
class DerivConfig:
    """Upstream feed endpoint, credentials and timeouts."""
    app_id: str = _env("DERIV_APP_ID", "1089")
    ws_url: str = _env("DERIV_WS_URL", "wss://ws.derivws.com/websockets/v3")
    api_token: str = _env("DERIV_API_TOKEN", "")
    connect_timeout: float = _env_float("DERIV_CONNECT_TIMEOUT", "10")
    request_timeout: float = _env_float("DERIV_REQUEST_TIMEOUT", "30")

    @property
    def url(self) -> str:
        return f"{self.ws_url}?app_id={self.app_id}"


# ── Polling Cycle ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PollingConfig:
    """Refresh cadence and per-category fetch sizes."""
    refresh_interval: float = _env_float("REFRESH_INTERVAL_SEC", "10")
    trade_history_limit: int = _env_int("TRADE_HISTORY_LIMIT", "50")
    statement_limit: int = _env_int("STATEMENT_LIMIT", "50")


# ── Risk Detector Thresholds ─────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskThresholds:
    """Detector thresholds and score → level cut-offs."""
    martingale_multiplier: float = _env_float("MARTINGALE_MULTIPLIER", "1.8")
    martingale_occurrences: int = _env_int("MARTINGALE_OCCURRENCES", "2")
    martingale_window: int = 10
    overtrading_count: int = _env_int("OVERTRADING_COUNT", "5")
    overtrading_window_sec: int = _env_int("OVERTRADING_WINDOW_SEC", "300")
    loss_streak_min: int = _env_int("LOSS_STREAK_MIN", "3")
    loss_streak_high: int = 5
    min_trades_for_patterns: int = 3
    position_sizing_window: int = 5
    position_sizing_medium_pct: float = _env_float("POSITION_SIZING_MEDIUM_PCT", "5.0")
    position_sizing_high_pct: float = _env_float("POSITION_SIZING_HIGH_PCT", "10.0")
    recommended_stake_pct: float = 2.0
    medium_risk_score: int = 70   # below this is medium risk
    high_risk_score: int = 40     # below this is high risk


# ── Explanation Generator ────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExplainerConfig:
    """Text-generation endpoint used to explain findings."""
    hf_token: str = _env("HF_TOKEN", "")
    model: str = _env("HF_MODEL", "meta-llama/Llama-3.1-8B-Instruct")
    chat_url: str = _env("HF_CHAT_URL", "https://router.huggingface.co/v1/chat/completions")
    cooldown_sec: float = _env_float("EXPLAIN_COOLDOWN_SEC", "5")
    timeout_sec: float = _env_float("EXPLAIN_TIMEOUT_SEC", "30")
    max_tokens: int = _env_int("EXPLAIN_MAX_TOKENS", "300")
    temperature: float = 0.7
    enabled: bool = _env_bool("USE_EXPLAINER", "true")


# ── Redis Config ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RedisConfig:
    """Redis connection settings for snapshot publishing."""
    enabled: bool = _env_bool("USE_REDIS", "false")
    host: str = _env("REDIS_HOST", "localhost")
    port: int = _env_int("REDIS_PORT", "6379")
    db: int = _env_int("REDIS_DB", "2")
    key_prefix: str = _env("REDIS_KEY_PREFIX", "risk_coach")


# ── Prometheus Metrics ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class MetricsConfig:
    """Prometheus exporter settings."""
    enabled: bool = _env_bool("USE_METRICS", "false")
    port: int = _env_int("METRICS_PORT", "8000")


# ── Top-level aggregate ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    """
    Root configuration object — compose all sub-configs.

    Usage:
        cfg = AppConfig()              # loads from env
        print(cfg.deriv.url)
        print(cfg.risk.martingale_multiplier)
    """
    deriv: DerivConfig = field(default_factory=DerivConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    risk: RiskThresholds = field(default_factory=RiskThresholds)
    explainer: ExplainerConfig = field(default_factory=ExplainerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log_level: str = _env("LOG_LEVEL", "INFO")


# Module-level singleton (immutable, safe to share)
_cfg: AppConfig | None = None


def get_config() -> AppConfig:
    """Get the global immutable config. Created once, never mutated."""
    global _cfg
    if _cfg is None:
        _cfg = AppConfig()
    return _cfg
