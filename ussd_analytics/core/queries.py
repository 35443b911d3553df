"""Aggregate query layer: grouped reads against the USSD ledger.

Every method issues one read-only statement with bound parameters and
returns plain dicts whose numeric fields have already been coerced from
the driver's Decimal/bigint/string values. Driver failures surface as
UpstreamQueryError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import psycopg

from ussd_analytics.core.constants import (
    BANKING_TYPES,
    FAILURE_STATUSES,
    GRANULARITY_DAY,
    GRANULARITY_HOUR,
    MOBILE_MONEY_TYPES,
    STATUS_SUCCESS,
    TYPE_AIRTIME,
    TYPE_ELECTRICITY,
    TYPE_WATER,
)
from ussd_analytics.core.filters import CategoryPredicate, Equals, NoFilter, OneOf, TimeWindow
from ussd_analytics.core.metrics import success_rate
from ussd_analytics.core.utils import (
    UpstreamQueryError,
    ValidationError,
    coerce_row,
    to_float,
    to_int,
)

if TYPE_CHECKING:
    from ussd_analytics.storage.database import Database

logger = logging.getLogger(__name__)

# Grouping column per distribution dimension
_DIMENSION_COLUMNS = {
    "province": "province",
    "network": "network_provider",
}


def category_clause(predicate: CategoryPredicate, column: str) -> tuple[str | None, list[Any]]:
    """Render a category predicate as a SQL condition on ``column``."""
    if isinstance(predicate, Equals):
        return f"{column} = %s", [predicate.transaction_type]
    if isinstance(predicate, OneOf):
        return f"{column} = ANY(%s)", [list(predicate.transaction_types)]
    if isinstance(predicate, NoFilter):
        return None, []
    raise TypeError(f"unknown category predicate: {predicate!r}")


class TransactionStore:
    """Read-only aggregate queries over ussd_transactions and ussd_sessions."""

    def __init__(
        self, db: Database, *,
        active_session_minutes: int = 10,
        heatmap_lookback_days: int = 30,
    ):
        self.db = db
        self.active_session_minutes = active_session_minutes
        self.heatmap_lookback_days = heatmap_lookback_days

    # --- execution ---

    def _fetch(self, query: str, params: tuple | list | None = None) -> list[dict]:
        try:
            return self.db.execute(query, params)
        except psycopg.Error as exc:
            logger.error("Aggregate query failed: %s", exc.__class__.__name__)
            raise UpstreamQueryError("aggregate query failed") from exc

    def _fetch_one(self, query: str, params: tuple | list | None = None) -> dict | None:
        try:
            return self.db.execute_one(query, params)
        except psycopg.Error as exc:
            logger.error("Aggregate query failed: %s", exc.__class__.__name__)
            raise UpstreamQueryError("aggregate query failed") from exc

    # --- time series ---

    def volume_by_bucket(self, window: TimeWindow, predicate: CategoryPredicate) -> list[dict]:
        """Transaction volume and quality metrics per hour or day bucket.

        LEFT JOIN on sessions: transactions with no resolvable session still
        count, and contribute nothing to the duration average.
        """
        trunc = GRANULARITY_HOUR if window.granularity == GRANULARITY_HOUR else GRANULARITY_DAY

        # SELECT placeholders first, in column order, then the WHERE ones
        params: list[Any] = [
            TYPE_ELECTRICITY, TYPE_WATER, TYPE_AIRTIME,
            list(MOBILE_MONEY_TYPES), list(BANKING_TYPES),
            STATUS_SUCCESS, list(FAILURE_STATUSES),
        ]
        where = ["t.transaction_timestamp >= %s"]
        params.append(window.start)
        clause, clause_params = category_clause(predicate, "t.transaction_type")
        if clause:
            where.append(clause)
            params.extend(clause_params)
        where_clause = " AND ".join(where)

        rows = self._fetch(
            f"""
            SELECT
                date_trunc('{trunc}', t.transaction_timestamp) as bucket,
                COUNT(*) as total,
                COUNT(*) FILTER (WHERE t.transaction_type = %s) as electricity,
                COUNT(*) FILTER (WHERE t.transaction_type = %s) as water,
                COUNT(*) FILTER (WHERE t.transaction_type = %s) as airtime,
                COUNT(*) FILTER (WHERE t.transaction_type = ANY(%s)) as mobile_money,
                COUNT(*) FILTER (WHERE t.transaction_type = ANY(%s)) as banking,
                COALESCE(AVG(s.session_duration), 0) as avg_session_time,
                COALESCE(
                    COUNT(*) FILTER (WHERE t.transaction_status = %s)::float
                        / NULLIF(COUNT(*), 0) * 100,
                    0
                ) as success_rate,
                COALESCE(SUM(t.transaction_amount), 0) as revenue,
                COUNT(*) FILTER (WHERE t.transaction_status = ANY(%s)) as failed,
                COUNT(DISTINCT t.session_id) as distinct_sessions
            FROM ussd_transactions t
            LEFT JOIN ussd_sessions s ON t.session_id = s.session_id
            WHERE {where_clause}
            GROUP BY bucket
            ORDER BY bucket ASC
            """,
            tuple(params),
        )

        return [
            coerce_row(
                r,
                ints=("total", "electricity", "water", "airtime", "mobile_money",
                      "banking", "failed", "distinct_sessions"),
                floats=("avg_session_time", "success_rate", "revenue"),
            )
            for r in rows
        ]

    # --- gauge KPIs ---

    def general_metrics(self, start: datetime) -> dict:
        """Totals and success rate for transactions attached to a session (INNER JOIN)."""
        row = self._fetch_one(
            """
            SELECT
                COUNT(*) as total,
                COUNT(*) FILTER (WHERE t.transaction_status = %s) as successful,
                COUNT(*) FILTER (WHERE t.transaction_status IS DISTINCT FROM %s) as failed
            FROM ussd_transactions t
            JOIN ussd_sessions s ON t.session_id = s.session_id
            WHERE t.transaction_timestamp >= %s
            """,
            (STATUS_SUCCESS, STATUS_SUCCESS, start),
        )
        out = coerce_row(row, ints=("total", "successful", "failed"))
        out["success_rate"] = success_rate(out["successful"], out["total"])
        return out

    def active_session_count(self, now: datetime | None = None) -> int:
        """Sessions with a recorded end that started within the recency window."""
        if now is None:
            now = datetime.now(timezone.utc)
        since = now - timedelta(minutes=self.active_session_minutes)
        row = self._fetch_one(
            """
            SELECT COUNT(*) as cnt
            FROM ussd_sessions
            WHERE session_end IS NOT NULL AND session_start >= %s
            """,
            (since,),
        )
        return to_int(row["cnt"] if row else 0, field="cnt")

    def peak_hour(self, start: datetime) -> dict | None:
        """Busiest hour of day (0-23) in the window, or None when there is no traffic."""
        row = self._fetch_one(
            """
            SELECT EXTRACT(HOUR FROM transaction_timestamp) as hour, COUNT(*) as count
            FROM ussd_transactions
            WHERE transaction_timestamp >= %s
            GROUP BY EXTRACT(HOUR FROM transaction_timestamp)
            ORDER BY count DESC
            LIMIT 1
            """,
            (start,),
        )
        if not row:
            return None
        return coerce_row(row, ints=("hour", "count"))

    def top_province(self, start: datetime) -> dict | None:
        """Province with the most sessions started in the window."""
        row = self._fetch_one(
            """
            SELECT province, COUNT(*) as count
            FROM ussd_sessions
            WHERE session_start >= %s
            GROUP BY province
            ORDER BY count DESC
            LIMIT 1
            """,
            (start,),
        )
        if not row:
            return None
        return coerce_row(row, ints=("count",))

    def average_session_duration(self, start: datetime) -> float:
        """Mean session_duration in seconds for sessions started in the window."""
        row = self._fetch_one(
            """
            SELECT AVG(session_duration) as avg_time
            FROM ussd_sessions
            WHERE session_start >= %s
            """,
            (start,),
        )
        return to_float(row["avg_time"] if row else None, field="avg_time")

    def previous_period_count(self, current_start: datetime, previous_start: datetime) -> int:
        """Transactions in ``[previous_start, current_start)``."""
        row = self._fetch_one(
            """
            SELECT COUNT(*) as cnt
            FROM ussd_transactions
            WHERE transaction_timestamp < %s AND transaction_timestamp >= %s
            """,
            (current_start, previous_start),
        )
        return to_int(row["cnt"] if row else 0, field="cnt")

    def network_breakdown(self, start: datetime) -> list[dict]:
        """Volume and success rate per network provider (INNER JOIN on sessions)."""
        rows = self._fetch(
            """
            SELECT
                s.network_provider as name,
                COUNT(*) as total_transactions,
                COALESCE(
                    COUNT(*) FILTER (WHERE t.transaction_status = %s)::float
                        / NULLIF(COUNT(*), 0) * 100,
                    0
                ) as success_rate
            FROM ussd_transactions t
            JOIN ussd_sessions s ON t.session_id = s.session_id
            WHERE t.transaction_timestamp >= %s
            GROUP BY s.network_provider
            ORDER BY total_transactions DESC
            """,
            (STATUS_SUCCESS, start),
        )
        return [
            coerce_row(r, ints=("total_transactions",), floats=("success_rate",))
            for r in rows
        ]

    # --- revenue ---

    def revenue_trends(self, start: datetime) -> list[dict]:
        """Daily revenue from successful transactions, pivoted by service."""
        rows = self._fetch(
            """
            SELECT
                date_trunc('day', transaction_timestamp) as date,
                COALESCE(SUM(transaction_amount) FILTER (WHERE transaction_type = %s), 0) as electricity,
                COALESCE(SUM(transaction_amount) FILTER (WHERE transaction_type = %s), 0) as water,
                COALESCE(SUM(transaction_amount) FILTER (WHERE transaction_type = %s), 0) as airtime,
                COALESCE(SUM(transaction_amount) FILTER (WHERE transaction_type = ANY(%s)), 0) as mobile_money,
                COALESCE(SUM(transaction_amount), 0) as total
            FROM ussd_transactions
            WHERE transaction_status = %s AND transaction_timestamp >= %s
            GROUP BY date_trunc('day', transaction_timestamp)
            ORDER BY date ASC
            """,
            (
                TYPE_ELECTRICITY, TYPE_WATER, TYPE_AIRTIME, list(MOBILE_MONEY_TYPES),
                STATUS_SUCCESS, start,
            ),
        )
        return [
            coerce_row(r, floats=("electricity", "water", "airtime", "mobile_money", "total"))
            for r in rows
        ]

    # --- demographics ---

    def unique_user_count(self) -> int:
        row = self._fetch_one("SELECT COUNT(DISTINCT msisdn) as cnt FROM ussd_sessions")
        return to_int(row["cnt"] if row else 0, field="cnt")

    def distribution_by(self, dimension: str) -> list[dict]:
        """Distinct users per province or network provider, largest first."""
        column = _DIMENSION_COLUMNS.get(dimension)
        if column is None:
            raise ValidationError(
                f"invalid dimension: {dimension}. Must be one of: {', '.join(_DIMENSION_COLUMNS)}"
            )
        rows = self._fetch(
            f"""
            SELECT {column} as key, COUNT(DISTINCT msisdn) as users
            FROM ussd_sessions
            GROUP BY {column}
            ORDER BY users DESC
            """,
        )
        return [coerce_row(r, ints=("users",)) for r in rows]

    # --- heatmap ---

    def raw_hourly_counts(self, now: datetime | None = None) -> list[dict]:
        """Counts per (day of week, hour) over a fixed lookback. Day 0 is Sunday."""
        if now is None:
            now = datetime.now(timezone.utc)
        since = now - timedelta(days=self.heatmap_lookback_days)
        rows = self._fetch(
            """
            SELECT
                EXTRACT(DOW FROM transaction_timestamp) as day_of_week,
                EXTRACT(HOUR FROM transaction_timestamp) as hour,
                COUNT(*) as count
            FROM ussd_transactions
            WHERE transaction_timestamp >= %s
            GROUP BY 1, 2
            """,
            (since,),
        )
        return [coerce_row(r, ints=("day_of_week", "hour", "count")) for r in rows]

    # --- lookups ---

    def transaction_by_id(self, transaction_id: str) -> dict | None:
        row = self._fetch_one(
            """
            SELECT transaction_id, session_id, ussd_string, menu_level,
                   selected_option, input_value, transaction_type,
                   transaction_amount, currency, transaction_status,
                   failure_reason, transaction_timestamp
            FROM ussd_transactions
            WHERE transaction_id = %s
            """,
            (transaction_id,),
        )
        if not row:
            return None
        out = dict(row)
        if out.get("transaction_amount") is not None:
            out["transaction_amount"] = to_float(out["transaction_amount"], field="transaction_amount")
        if out.get("transaction_timestamp") is not None:
            out["transaction_timestamp"] = out["transaction_timestamp"].isoformat()
        return out

    def ping(self) -> bool:
        row = self._fetch_one("SELECT 1 as ok")
        return bool(row and row.get("ok") == 1)
