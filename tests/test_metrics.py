"""Tests for derived metrics: trends, shares, heatmap, projections, province grouping."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ussd_analytics.core.constants import AGE_GROUP_SPLITS, GENDER_SPLITS, HEATMAP_BUCKETS
from ussd_analytics.core.metrics import (
    build_heatmap,
    format_bucket,
    group_provinces,
    heatmap_matrix,
    market_shares,
    parse_bucket,
    peak_hour_label,
    project_distribution,
    success_rate,
    trend_percentage,
    with_shares,
)
from ussd_analytics.core.utils import InternalFormattingError

# day_of_week values as the store reports them (0=Sunday)
SUN, MON, TUE, SAT = 0, 1, 2, 6


def _cell(cells, day, bucket):
    return next(c for c in cells if c["day"] == day and c["hour"] == bucket)


class TestTrendPercentage:
    def test_no_history_no_traffic(self):
        assert trend_percentage(0, 0) == 0

    def test_no_history_with_traffic(self):
        assert trend_percentage(50, 0) == 100.0

    def test_growth(self):
        assert trend_percentage(150, 100) == 50.0

    def test_decline(self):
        assert trend_percentage(50, 100) == -50.0

    def test_no_current_traffic_ignores_history(self):
        assert trend_percentage(0, 100) == 0

    def test_rounds_to_one_decimal(self):
        assert trend_percentage(2, 3) == -33.3


class TestSuccessRate:
    def test_zero_total(self):
        assert success_rate(0, 0) == 0.0

    def test_rounding(self):
        assert success_rate(2, 3) == 66.7


class TestMarketShares:
    def test_three_networks(self):
        shares = market_shares([50, 30, 20])
        assert shares == [50.0, 30.0, 20.0]
        assert sum(shares) == pytest.approx(100.0, abs=0.2)

    def test_zero_sum_is_zero(self):
        assert market_shares([0, 0, 0]) == [0.0, 0.0, 0.0]

    def test_empty(self):
        assert market_shares([]) == []

    def test_with_shares_attaches_field(self):
        items = [{"name": "A", "users": 3}, {"name": "B", "users": 1}]
        result = with_shares(items, "users", "percentage")
        assert result[0]["percentage"] == 75.0
        assert result[1]["percentage"] == 25.0
        assert "percentage" not in items[0]


class TestPeakHourLabel:
    @pytest.mark.parametrize("hour,label", [
        (0, "12 AM"),
        (1, "1 AM"),
        (11, "11 AM"),
        (12, "12 PM"),
        (14, "2 PM"),
        (23, "11 PM"),
    ])
    def test_twelve_hour_clock(self, hour, label):
        assert peak_hour_label(hour) == label

    def test_defaults_to_noon(self):
        assert peak_hour_label(None) == "12 PM"

    def test_out_of_range(self):
        with pytest.raises(InternalFormattingError):
            peak_hour_label(24)


class TestBucketLabels:
    def test_hourly_round_trip_keeps_hour(self):
        ts = datetime(2024, 3, 9, 17, 0, tzinfo=timezone.utc)
        label = format_bucket(ts, "hour")
        assert label == "2024-03-09 17:00"
        assert parse_bucket(label, "hour").hour == 17

    def test_daily_label(self):
        ts = datetime(2024, 3, 9, tzinfo=timezone.utc)
        assert format_bucket(ts, "day") == "2024-03-09"
        assert parse_bucket("2024-03-09", "day") == ts

    def test_unparseable_label(self):
        with pytest.raises(InternalFormattingError):
            parse_bucket("yesterday", "day")


class TestHeatmap:
    def test_shape_and_order(self):
        cells = build_heatmap([])
        assert len(cells) == 84
        assert [c["day"] for c in cells[::12]] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
        assert [c["hour"] for c in cells[:12]] == HEATMAP_BUCKETS
        assert HEATMAP_BUCKETS[0] == "00-02"
        assert HEATMAP_BUCKETS[-1] == "22-00"

    def test_empty_has_no_intensity(self):
        cells = build_heatmap([])
        assert all(c["value"] == 0 and c["intensity"] == 0 and not c["isPeak"] for c in cells)

    def test_adjacent_hours_fold_into_one_bucket(self):
        rows = [
            {"day_of_week": MON, "hour": 14, "count": 100},
            {"day_of_week": MON, "hour": 15, "count": 100},
        ]
        cells = build_heatmap(rows)
        cell = _cell(cells, "Mon", "14-16")
        assert cell["value"] == 200
        assert cell["intensity"] == 5
        assert cell["isPeak"] is True

    def test_sunday_is_reindexed_last(self):
        matrix = heatmap_matrix([{"day_of_week": SUN, "hour": 0, "count": 5}])
        assert matrix[6][0] == 5
        assert matrix[0][0] == 0

    def test_monday_is_first(self):
        matrix = heatmap_matrix([{"day_of_week": MON, "hour": 23, "count": 3}])
        assert matrix[0][11] == 3

    def test_intensity_bands(self):
        # One cell per bucket on Tuesday, max = 100
        counts = [100, 91, 71, 51, 31, 11, 10, 0]
        rows = [
            {"day_of_week": TUE, "hour": i * 2, "count": c}
            for i, c in enumerate(counts)
        ]
        cells = build_heatmap(rows)
        intensities = [_cell(cells, "Tue", HEATMAP_BUCKETS[i])["intensity"] for i in range(len(counts))]
        assert intensities == [5, 5, 4, 3, 2, 1, 0, 0]

    def test_peak_requires_ratio_above_point_nine(self):
        rows = [
            {"day_of_week": SAT, "hour": 10, "count": 100},
            {"day_of_week": SAT, "hour": 12, "count": 90},
        ]
        cells = build_heatmap(rows)
        assert _cell(cells, "Sat", "10-12")["isPeak"] is True
        assert _cell(cells, "Sat", "12-14")["isPeak"] is False
        assert _cell(cells, "Sat", "12-14")["intensity"] == 4

    def test_string_counts_are_coerced(self):
        cells = build_heatmap([{"day_of_week": "1", "hour": "8", "count": "12"}])
        assert _cell(cells, "Mon", "08-10")["value"] == 12

    def test_rows_outside_grid_are_ignored(self):
        rows = [
            {"day_of_week": 7, "hour": 1, "count": 50},
            {"day_of_week": MON, "hour": 24, "count": 50},
            {"day_of_week": MON, "hour": 1, "count": 4},
        ]
        cells = build_heatmap(rows)
        assert sum(c["value"] for c in cells) == 4


class TestProjection:
    def test_age_band_projection(self):
        groups = project_distribution(1000, AGE_GROUP_SPLITS)
        by_name = {g["name"]: g for g in groups}
        assert by_name["26-35"]["users"] == 380
        assert by_name["26-35"]["percentage"] == 38

    def test_age_bands_sum_to_100(self):
        assert sum(pct for _, pct in AGE_GROUP_SPLITS) == 100

    def test_gender_split(self):
        groups = project_distribution(1000, GENDER_SPLITS)
        assert [g["users"] for g in groups] == [580, 420]

    def test_zero_users(self):
        assert all(g["users"] == 0 for g in project_distribution(0, AGE_GROUP_SPLITS))


class TestGroupProvinces:
    def test_folds_unlisted_into_other(self):
        rows = [
            {"key": "Lusaka", "users": 40},
            {"key": "Copperbelt", "users": 30},
            {"key": "Southern", "users": 20},
            {"key": "Eastern", "users": 10},
        ]
        result = group_provinces(rows, {"Lusaka", "Copperbelt", "Southern"})
        assert len(result) == 4
        assert result == [
            {"name": "Lusaka", "users": 40},
            {"name": "Copperbelt", "users": 30},
            {"name": "Southern", "users": 20},
            {"name": "Other Provinces", "users": 10},
        ]

    def test_sorted_descending_after_merge(self):
        rows = [
            {"key": "Lusaka", "users": 5},
            {"key": "Western", "users": 30},
            {"key": "Luapula", "users": 25},
            {"key": None, "users": 1},
        ]
        result = group_provinces(rows, ["Lusaka"])
        assert result == [
            {"name": "Other Provinces", "users": 56},
            {"name": "Lusaka", "users": 5},
        ]

    def test_other_present_when_empty(self):
        assert group_provinces([], ["Lusaka"]) == [{"name": "Other Provinces", "users": 0}]
