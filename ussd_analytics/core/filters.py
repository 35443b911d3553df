"""Request-to-filter translation.

Maps the dashboard's closed vocabulary of ``range`` and ``service`` tokens
onto concrete time windows and transaction-type predicates. Nothing here
raises: a missing or unknown token degrades to the endpoint default.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ussd_analytics.core.constants import (
    BANKING_TYPES,
    GRANULARITY_DAY,
    GRANULARITY_HOUR,
    MOBILE_MONEY_TYPES,
    RANGE_7D,
    RANGE_24H,
    RANGE_LENGTHS,
    RANGE_YTD,
    TYPE_AIRTIME,
    TYPE_ELECTRICITY,
    TYPE_WATER,
    VALID_RANGES,
)


@dataclass(frozen=True)
class TimeWindow:
    """A resolved ``[start, end)`` window and its time-series bucket size."""

    token: str
    start: datetime
    end: datetime
    granularity: str

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def previous(self) -> TimeWindow:
        """The immediately preceding window of equal length."""
        length = self.length
        return TimeWindow(
            token=self.token,
            start=self.end - 2 * length,
            end=self.end - length,
            granularity=self.granularity,
        )


def _normalize(token: str | None) -> str:
    if not isinstance(token, str):
        return ""
    return token.strip().lower()


def _start_of_year(now: datetime) -> datetime:
    return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)


def resolve_range(token: str | None, default: str, now: datetime | None = None) -> TimeWindow:
    """Resolve a range token into a window ending at ``now``.

    Unrecognized tokens fall back to ``default``; an unrecognized default
    falls back to 7 days.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    key = _normalize(token)
    if key not in VALID_RANGES:
        key = _normalize(default)
    if key not in VALID_RANGES:
        key = RANGE_7D

    granularity = GRANULARITY_HOUR if key == RANGE_24H else GRANULARITY_DAY
    if key == RANGE_YTD:
        start = _start_of_year(now)
    else:
        start = now - RANGE_LENGTHS[key]
    return TimeWindow(token=key, start=start, end=now, granularity=granularity)


# ============================================================
# Category predicates
# ============================================================

@dataclass(frozen=True)
class NoFilter:
    """Every transaction type."""


@dataclass(frozen=True)
class Equals:
    transaction_type: str


@dataclass(frozen=True)
class OneOf:
    transaction_types: tuple[str, ...]


CategoryPredicate = NoFilter | Equals | OneOf

_SERVICE_PREDICATES: dict[str, CategoryPredicate] = {
    "electricity": Equals(TYPE_ELECTRICITY),
    "banking": OneOf(BANKING_TYPES),
    "mobilemoney": OneOf(MOBILE_MONEY_TYPES),
    "water": Equals(TYPE_WATER),
    "airtime": Equals(TYPE_AIRTIME),
}


def service_predicate(token: str | None) -> CategoryPredicate:
    """Map a service token to a category predicate. 'all' and unknown tokens are unfiltered."""
    return _SERVICE_PREDICATES.get(_normalize(token), NoFilter())
