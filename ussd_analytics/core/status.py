"""Service health."""

from __future__ import annotations

from ussd_analytics import __version__
from ussd_analytics.config import Config
from ussd_analytics.core.queries import TransactionStore
from ussd_analytics.core.utils import UpstreamQueryError


def get_status(store: TransactionStore, config: Config) -> dict:
    """Version, database reachability and the effective analytics settings."""
    try:
        db_ok = store.ping()
    except UpstreamQueryError:
        db_ok = False

    return {
        "version": __version__,
        "status": "healthy" if db_ok else "degraded",
        "database": {
            "reachable": db_ok,
            "host": config.db.host,
            "name": config.db.name,
            "sslmode": config.db.sslmode,
        },
        "analytics": {
            "query_timeout": config.analytics.query_timeout,
            "fanout_workers": config.analytics.fanout_workers,
            "heatmap_lookback_days": config.analytics.heatmap_lookback_days,
        },
    }
