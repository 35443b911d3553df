"""Shared test helpers for analytics tests."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

from ussd_analytics.config import AnalyticsConfig, Config
from ussd_analytics.core.analytics import AnalyticsService
from ussd_analytics.core.services import Services

NOW = datetime(2024, 6, 12, 15, 30, tzinfo=timezone.utc)


def make_gauge_store() -> MagicMock:
    """A store mock with realistic answers for every gauge query."""
    store = MagicMock()
    store.general_metrics.return_value = {
        "total": 150, "successful": 120, "failed": 30, "success_rate": 80.0,
    }
    store.active_session_count.return_value = 7
    store.peak_hour.return_value = {"hour": 14, "count": 42}
    store.top_province.return_value = {"province": "Lusaka", "count": 88}
    store.average_session_duration.return_value = 95.456
    store.previous_period_count.return_value = 100
    store.network_breakdown.return_value = [
        {"name": "MTN", "total_transactions": 50, "success_rate": 91.234},
        {"name": "Airtel", "total_transactions": 30, "success_rate": 85.0},
        {"name": "Zamtel", "total_transactions": 20, "success_rate": 70.0},
    ]
    return store


def make_services(store: MagicMock | None = None, config: Config | None = None) -> Services:
    """Services wired to a mocked store and database; no pool is opened."""
    config = config or Config(analytics=AnalyticsConfig(query_timeout=2.0))
    store = store or make_gauge_store()
    db = store.db
    return Services(
        config=config,
        db=db,
        store=store,
        analytics=AnalyticsService(store, config.analytics),
    )
