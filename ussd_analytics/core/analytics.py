"""Analytics: dashboard payload assembly over the aggregate query layer."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from ussd_analytics.core import metrics
from ussd_analytics.core.constants import (
    AGE_GROUP_SPLITS,
    DEFAULT_REVENUE_RANGE,
    DEFAULT_SUCCESS_RATE_RANGE,
    DEFAULT_VOLUME_RANGE,
    DEVICE_SPLITS,
    GENDER_SPLITS,
    UNKNOWN_NETWORK_LABEL,
    URBAN_RURAL_SPLITS,
)
from ussd_analytics.core.filters import resolve_range, service_predicate
from ussd_analytics.core.utils import (
    AnalyticsError,
    NotFoundError,
    UpstreamQueryError,
    ValidationError,
)

if TYPE_CHECKING:
    from ussd_analytics.config import AnalyticsConfig
    from ussd_analytics.core.queries import TransactionStore

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Builds each endpoint's payload from TransactionStore reads."""

    def __init__(self, store: TransactionStore, analytics_config: AnalyticsConfig):
        self.store = store
        self._config = analytics_config
        self._executor = ThreadPoolExecutor(
            max_workers=analytics_config.fanout_workers,
            thread_name_prefix="gauge-fanout",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ============================================================
    # Fan-out
    # ============================================================

    def _run_branch(self, fn: Callable[..., Any], *args: Any) -> Any:
        # Worker threads check out their own pooled connection; hand it back per branch.
        try:
            return fn(*args)
        finally:
            self.store.db.release_if_held()

    def _gather(self, branches: dict[str, tuple]) -> dict[str, Any]:
        """Run independent queries concurrently; all succeed or the request fails.

        Every branch shares one deadline of ``query_timeout`` seconds.
        """
        futures: dict[str, Future] = {
            name: self._executor.submit(self._run_branch, fn, *args)
            for name, (fn, *args) in branches.items()
        }
        deadline = time.monotonic() + self._config.query_timeout
        results: dict[str, Any] = {}
        try:
            for name, future in futures.items():
                remaining = max(deadline - time.monotonic(), 0)
                try:
                    results[name] = future.result(timeout=remaining)
                except FutureTimeoutError:
                    logger.warning(
                        "Gauge query '%s' exceeded %.1fs budget",
                        name, self._config.query_timeout,
                    )
                    raise UpstreamQueryError(f"query '{name}' timed out") from None
                except AnalyticsError:
                    raise
                except Exception as exc:
                    logger.error("Gauge query '%s' failed: %s", name, exc.__class__.__name__)
                    raise UpstreamQueryError(f"query '{name}' failed") from exc
        except AnalyticsError:
            for future in futures.values():
                future.cancel()
            raise
        return results

    # ============================================================
    # Endpoints
    # ============================================================

    def get_transaction(self, transaction_id: str | None) -> dict:
        if transaction_id is None or not transaction_id.strip():
            raise ValidationError("transaction_id is required")
        record = self.store.transaction_by_id(transaction_id.strip())
        if record is None:
            raise NotFoundError(f"transaction {transaction_id} not found")
        return record

    def transaction_volume(
        self, range_token: str | None = None, service: str | None = None,
        now: datetime | None = None,
    ) -> list[dict]:
        """Bucketed volume series, hourly for 24h and daily otherwise."""
        window = resolve_range(range_token, DEFAULT_VOLUME_RANGE, now=now)
        predicate = service_predicate(service)
        rows = self.store.volume_by_bucket(window, predicate)

        return [
            {
                "timestamp": r["bucket"].isoformat(),
                "label": metrics.format_bucket(r["bucket"], window.granularity),
                "total": r["total"],
                "electricity": r["electricity"],
                "water": r["water"],
                "airtime": r["airtime"],
                "mobileMoney": r["mobile_money"],
                "banking": r["banking"],
                "avgSessionTime": round(r["avg_session_time"], 1),
                "successRate": round(r["success_rate"], 1),
                "revenue": round(r["revenue"], 2),
                "failedTransactions": r["failed"],
                "peakConcurrentUsers": r["distinct_sessions"],
            }
            for r in rows
        ]

    def gauge_stats(self, range_token: str | None = None, now: datetime | None = None) -> dict:
        """Success-rate gauge KPIs plus per-network breakdown."""
        if now is None:
            now = datetime.now(timezone.utc)
        window = resolve_range(range_token, DEFAULT_SUCCESS_RATE_RANGE, now=now)
        previous = window.previous()

        store = self.store
        results = self._gather({
            "general": (store.general_metrics, window.start),
            "active_sessions": (store.active_session_count, now),
            "peak_hour": (store.peak_hour, window.start),
            "top_province": (store.top_province, window.start),
            "avg_duration": (store.average_session_duration, window.start),
            "previous_total": (store.previous_period_count, window.start, previous.start),
        })

        general = results["general"]
        peak = results["peak_hour"]
        top = results["top_province"]

        networks = store.network_breakdown(window.start)
        networks = metrics.with_shares(networks, "total_transactions", "market_share")

        return {
            "metrics": {
                "successRate": general["success_rate"],
                "successfulTxns": general["successful"],
                "failedTxns": general["failed"],
                "avgResponseTime": round(results["avg_duration"], 1),
                "activeSessions": results["active_sessions"],
                "topProvince": (top.get("province") or "N/A") if top else "N/A",
                # Current side is session-joined, previous side counts every transaction.
                "trend": metrics.trend_percentage(general["total"], results["previous_total"]),
                "peakHour": metrics.peak_hour_label(peak["hour"] if peak else None),
            },
            "networks": [
                {
                    "name": n.get("name") or UNKNOWN_NETWORK_LABEL,
                    "totalTransactions": n["total_transactions"],
                    "successRate": round(n["success_rate"], 1),
                    "marketShare": n["market_share"],
                }
                for n in networks
            ],
        }

    def revenue_trends(self, range_token: str | None = None, now: datetime | None = None) -> list[dict]:
        window = resolve_range(range_token, DEFAULT_REVENUE_RANGE, now=now)
        rows = self.store.revenue_trends(window.start)
        return [
            {
                "date": r["date"].strftime(metrics.DAY_BUCKET_FORMAT),
                "electricity": round(r["electricity"], 2),
                "water": round(r["water"], 2),
                "airtime": round(r["airtime"], 2),
                "mobileMoney": round(r["mobile_money"], 2),
                "total": round(r["total"], 2),
            }
            for r in rows
        ]

    def demographics(self) -> dict:
        """Real user, province and network counts; age, gender, locality and
        device splits are fixed projections onto the real user total."""
        total_users = self.store.unique_user_count()
        provinces = self.store.distribution_by("province")
        networks = self.store.distribution_by("network")

        network_data = metrics.with_shares(
            [{"name": n.get("key") or UNKNOWN_NETWORK_LABEL, "users": n["users"]} for n in networks],
            "users", "percentage",
        )

        return {
            "totalUsers": total_users,
            "provinceData": metrics.group_provinces(provinces, self._config.top_provinces),
            "networkData": network_data,
            "ageGroups": metrics.project_distribution(total_users, AGE_GROUP_SPLITS),
            "genderData": metrics.project_distribution(total_users, GENDER_SPLITS),
            "urbanRuralData": metrics.project_distribution(total_users, URBAN_RURAL_SPLITS),
            "deviceData": metrics.project_distribution(total_users, DEVICE_SPLITS),
            "projected": ["ageGroups", "genderData", "urbanRuralData", "deviceData"],
        }

    def peak_hours(self, now: datetime | None = None) -> list[dict]:
        return metrics.build_heatmap(self.store.raw_hourly_counts(now=now))
