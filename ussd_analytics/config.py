"""Configuration management. All settings from environment variables with sensible defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_TOP_PROVINCES = ("Lusaka", "Copperbelt", "Central", "Southern", "Eastern")


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    name: str = "ussd"
    user: str = "ussd"
    password: str = "ussd-dev-password"
    sslmode: str = "require"          # "disable", "prefer", "require", "verify-full"
    pool_min_size: int = 2
    pool_max_size: int = 10
    statement_timeout_ms: int = 15000  # server-side cap per statement, 0 = none

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
            f"?sslmode={self.sslmode}"
        )


@dataclass(frozen=True)
class AnalyticsConfig:
    query_timeout: float = 10.0        # seconds per fan-out branch
    fanout_workers: int = 6            # threads shared by concurrent gauge queries
    active_session_minutes: int = 10
    heatmap_lookback_days: int = 30
    top_provinces: tuple[str, ...] = DEFAULT_TOP_PROVINCES


@dataclass(frozen=True)
class Config:
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    http_host: str = "0.0.0.0"
    http_port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


def _parse_cors_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins. '*' means allow all."""
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def _parse_list(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not raw:
        return default
    items = tuple(p.strip() for p in raw.split(",") if p.strip())
    return items or default


def _normalize_prefix(raw: str) -> str:
    """'/api/' -> '/api', 'api' -> '/api', '' or '/' -> ''."""
    stripped = raw.strip().strip("/")
    return f"/{stripped}" if stripped else ""


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_level = os.getenv("USSD_LOG_LEVEL", "INFO").upper().strip()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        logger.warning("Unknown USSD_LOG_LEVEL '%s', using INFO", log_level)
        log_level = "INFO"

    return Config(
        db=DatabaseConfig(
            host=os.getenv("USSD_DB_HOST", "localhost"),
            port=int(os.getenv("USSD_DB_PORT", "5432")),
            name=os.getenv("USSD_DB_NAME", "ussd"),
            user=os.getenv("USSD_DB_USER", "ussd"),
            password=os.getenv("USSD_DB_PASS", "ussd-dev-password"),
            sslmode=os.getenv("USSD_DB_SSLMODE", "require"),
            pool_min_size=int(os.getenv("USSD_DB_POOL_MIN", "2")),
            pool_max_size=int(os.getenv("USSD_DB_POOL_MAX", "10")),
            statement_timeout_ms=int(os.getenv("USSD_DB_STATEMENT_TIMEOUT_MS", "15000")),
        ),
        analytics=AnalyticsConfig(
            query_timeout=float(os.getenv("USSD_QUERY_TIMEOUT", "10.0")),
            fanout_workers=int(os.getenv("USSD_FANOUT_WORKERS", "6")),
            active_session_minutes=int(os.getenv("USSD_ACTIVE_SESSION_MINUTES", "10")),
            heatmap_lookback_days=int(os.getenv("USSD_HEATMAP_LOOKBACK_DAYS", "30")),
            top_provinces=_parse_list(os.getenv("USSD_TOP_PROVINCES"), DEFAULT_TOP_PROVINCES),
        ),
        http_host=os.getenv("USSD_HTTP_HOST", "0.0.0.0"),
        http_port=int(os.getenv("USSD_HTTP_PORT", "8000")),
        api_prefix=_normalize_prefix(os.getenv("USSD_API_PREFIX", "/api")),
        cors_origins=_parse_cors_origins(os.getenv("USSD_CORS_ORIGINS", "*")),
        log_level=log_level,
    )
