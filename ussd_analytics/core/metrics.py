"""Derived metrics: trend, share, heatmap and projection math over aggregate rows.

All functions are pure. Inputs are expected to have passed through the
query layer's numeric coercion; anything else raises InternalFormattingError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from ussd_analytics.core.constants import (
    DEFAULT_PEAK_HOUR,
    GRANULARITY_HOUR,
    HEATMAP_BUCKET_HOURS,
    HEATMAP_BUCKETS,
    HEATMAP_DAYS,
    INTENSITY_THRESHOLDS,
    OTHER_PROVINCES_LABEL,
    PEAK_RATIO,
)
from ussd_analytics.core.utils import InternalFormattingError, to_float, to_int

logger = logging.getLogger(__name__)

HOUR_BUCKET_FORMAT = "%Y-%m-%d %H:00"
DAY_BUCKET_FORMAT = "%Y-%m-%d"


# ============================================================
# Rates and trends
# ============================================================

def trend_percentage(current: int | float, previous: int | float) -> float:
    """Percent change against the previous period.

    No current traffic is always 0. Traffic with no history is +100.
    """
    if current == 0:
        return 0.0
    if previous == 0:
        return 100.0
    return round((current - previous) / previous * 100, 1)


def success_rate(successful: int | float, total: int | float) -> float:
    if not total:
        return 0.0
    return round(successful / total * 100, 1)


def market_shares(totals: Sequence[int | float]) -> list[float]:
    """Each value's percentage of the sum, 1 decimal. All zero when the sum is zero."""
    grand_total = sum(totals)
    if grand_total == 0:
        return [0.0 for _ in totals]
    return [round(v / grand_total * 100, 1) for v in totals]


def peak_hour_label(hour: int | None) -> str:
    """Format 0-23 as a 12-hour clock label, e.g. 14 -> '2 PM'. None means noon."""
    if hour is None:
        hour = DEFAULT_PEAK_HOUR
    if not 0 <= hour <= 23:
        raise InternalFormattingError(f"hour out of range: {hour}")
    suffix = "AM" if hour < 12 else "PM"
    display = hour % 12 or 12
    return f"{display} {suffix}"


# ============================================================
# Buckets
# ============================================================

def format_bucket(ts: datetime, granularity: str) -> str:
    """Chart label for a bucket start."""
    fmt = HOUR_BUCKET_FORMAT if granularity == GRANULARITY_HOUR else DAY_BUCKET_FORMAT
    return ts.strftime(fmt)


def parse_bucket(label: str, granularity: str) -> datetime:
    """Inverse of format_bucket. Returns an aware UTC datetime."""
    fmt = HOUR_BUCKET_FORMAT if granularity == GRANULARITY_HOUR else DAY_BUCKET_FORMAT
    try:
        return datetime.strptime(label, fmt).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise InternalFormattingError(f"unparseable bucket label: {label!r}") from exc


# ============================================================
# Heatmap
# ============================================================

def intensity_for(ratio: float) -> int:
    for threshold, level in INTENSITY_THRESHOLDS:
        if ratio > threshold:
            return level
    return 0


def heatmap_matrix(rows: Iterable[dict]) -> list[list[int]]:
    """Fold (day_of_week, hour, count) rows into a Monday-first 7x12 matrix.

    The store's day_of_week is 0=Sunday; hour h lands in bucket h // 2.
    """
    matrix = [[0] * len(HEATMAP_BUCKETS) for _ in HEATMAP_DAYS]
    for row in rows:
        dow = to_int(row.get("day_of_week"), default=-1, field="day_of_week")
        hour = to_int(row.get("hour"), default=-1, field="hour")
        if not (0 <= dow <= 6 and 0 <= hour <= 23):
            logger.warning("Ignoring heatmap row outside the week grid: dow=%s hour=%s", dow, hour)
            continue
        day_idx = (dow + 6) % 7
        matrix[day_idx][hour // HEATMAP_BUCKET_HOURS] += to_int(row.get("count"), field="count")
    return matrix


def build_heatmap(rows: Iterable[dict]) -> list[dict]:
    """Flat 84-cell heatmap with intensity bands relative to the busiest cell."""
    matrix = heatmap_matrix(rows)
    max_val = max(max(day) for day in matrix)

    cells = []
    for day_idx, day in enumerate(HEATMAP_DAYS):
        for bucket_idx, bucket in enumerate(HEATMAP_BUCKETS):
            value = matrix[day_idx][bucket_idx]
            ratio = value / max_val if max_val > 0 else 0
            cells.append({
                "day": day,
                "hour": bucket,
                "value": value,
                "intensity": intensity_for(ratio),
                "isPeak": ratio > PEAK_RATIO,
            })
    return cells


# ============================================================
# Demographics
# ============================================================

def project_distribution(total: int, splits: Sequence[tuple[str, int]]) -> list[dict]:
    """Apply fixed percentage splits to a real total. Estimates, not measurements."""
    return [
        {"name": name, "percentage": pct, "users": int(round(total * pct / 100))}
        for name, pct in splits
    ]


def group_provinces(rows: Iterable[dict], allow_list: Iterable[str]) -> list[dict]:
    """Report allow-listed provinces individually and fold the rest into one entry.

    Returns ``[{name, users}]`` sorted by users descending.
    """
    allowed = set(allow_list)
    kept: dict[str, int] = {}
    other = 0
    for row in rows:
        name = row.get("key")
        users = to_int(row.get("users"), field="users")
        if name in allowed:
            kept[name] = kept.get(name, 0) + users
        else:
            other += users

    grouped = [{"name": name, "users": users} for name, users in kept.items()]
    grouped.append({"name": OTHER_PROVINCES_LABEL, "users": other})
    grouped.sort(key=lambda item: item["users"], reverse=True)
    return grouped


def with_shares(items: list[dict], value_key: str, share_key: str) -> list[dict]:
    """Attach a percentage-of-total field to each item."""
    shares = market_shares([to_float(item.get(value_key), field=value_key) for item in items])
    return [{**item, share_key: share} for item, share in zip(items, shares)]
