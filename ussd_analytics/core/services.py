"""Service container and factory. Centralizes component initialization."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ussd_analytics.config import Config, load_config
from ussd_analytics.core.analytics import AnalyticsService
from ussd_analytics.core.queries import TransactionStore
from ussd_analytics.storage.database import Database

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Holds all initialized analytics components."""

    config: Config
    db: Database
    store: TransactionStore
    analytics: AnalyticsService

    def close(self) -> None:
        self.analytics.close()
        self.db.close()


def create_services(config: Config | None = None, db: Database | None = None) -> Services:
    """Build all services from config.

    Args:
        config: Configuration to use. Loads from env if None.
        db: Pre-connected database. Creates new one if None.
    """
    if config is None:
        config = load_config()

    if db is None:
        db = Database(config.db)

    store = TransactionStore(
        db,
        active_session_minutes=config.analytics.active_session_minutes,
        heatmap_lookback_days=config.analytics.heatmap_lookback_days,
    )
    analytics = AnalyticsService(store, config.analytics)
    logger.info(
        "Analytics ready (query_timeout=%.1fs, fanout_workers=%d)",
        config.analytics.query_timeout, config.analytics.fanout_workers,
    )

    return Services(config=config, db=db, store=store, analytics=analytics)
