"""Centralized constants for USSD analytics core modules."""

from __future__ import annotations

from datetime import timedelta


# ============================================================
# Request vocabulary
# ============================================================

RANGE_24H = "24h"
RANGE_7D = "7d"
RANGE_30D = "30d"
RANGE_90D = "90d"
RANGE_YTD = "ytd"

# Relative ranges. "ytd" is absolute (start of the calendar year) and handled separately.
RANGE_LENGTHS: dict[str, timedelta] = {
    RANGE_24H: timedelta(hours=24),
    RANGE_7D: timedelta(days=7),
    RANGE_30D: timedelta(days=30),
    RANGE_90D: timedelta(days=90),
}
VALID_RANGES = [RANGE_24H, RANGE_7D, RANGE_30D, RANGE_90D, RANGE_YTD]

# Per-endpoint fallbacks for missing or unrecognized range tokens
DEFAULT_VOLUME_RANGE = RANGE_7D
DEFAULT_REVENUE_RANGE = RANGE_7D
DEFAULT_SUCCESS_RATE_RANGE = RANGE_30D

GRANULARITY_HOUR = "hour"
GRANULARITY_DAY = "day"


# ============================================================
# Ledger vocabulary (values stored in ussd_transactions)
# ============================================================

TYPE_ELECTRICITY = "electricity_token"
TYPE_WATER = "water_bill_payment"
TYPE_AIRTIME = "airtime_purchase"
TYPE_MONEY_TRANSFER = "money_transfer"
TYPE_BILL_PAYMENT = "bill_payment"
TYPE_BALANCE_CHECK = "balance_check"
TYPE_ACCOUNT_REGISTRATION = "account_registration"

MOBILE_MONEY_TYPES = (TYPE_MONEY_TRANSFER, TYPE_BILL_PAYMENT)
BANKING_TYPES = (TYPE_BALANCE_CHECK, TYPE_ACCOUNT_REGISTRATION)

STATUS_SUCCESS = "success"
FAILURE_STATUSES = ("failed", "timeout", "cancelled")


# ============================================================
# Heatmap
# ============================================================

# Output order is Monday-first; the store's day-of-week is 0=Sunday.
HEATMAP_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
HEATMAP_BUCKET_HOURS = 2
HEATMAP_BUCKETS = [
    f"{h:02d}-{(h + HEATMAP_BUCKET_HOURS) % 24:02d}"
    for h in range(0, 24, HEATMAP_BUCKET_HOURS)
]

# (ratio strictly greater than, intensity), checked top-down
INTENSITY_THRESHOLDS = [
    (0.9, 5),
    (0.7, 4),
    (0.5, 3),
    (0.3, 2),
    (0.1, 1),
]
PEAK_RATIO = 0.9

DEFAULT_PEAK_HOUR = 12


# ============================================================
# Demographics
# ============================================================

# The ledger has no age/gender/device fields. These splits are fixed
# product estimates applied to the real unique-user total.
AGE_GROUP_SPLITS = [
    ("18-25", 32),
    ("26-35", 38),
    ("36-45", 22),
    ("46-55", 6),
    ("56+", 2),
]
GENDER_SPLITS = [
    ("Male", 58),
    ("Female", 42),
]
URBAN_RURAL_SPLITS = [
    ("Urban", 40),
    ("Rural", 60),
]
DEVICE_SPLITS = [
    ("Feature Phone", 65),
    ("Smartphone", 35),
]

OTHER_PROVINCES_LABEL = "Other Provinces"
UNKNOWN_NETWORK_LABEL = "Unknown"
