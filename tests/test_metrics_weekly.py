"""Tests for ISO-week bucketing and weekly threshold categories."""

from datetime import date, timedelta

import pandas as pd
import pytest

from deal_core.data import prepare_context
from deal_core.filters import DealFilters, Thresholds
from deal_core.metrics_weekly import (
    CATEGORY_COLUMNS,
    bucket_deals_by_week,
    compute_threshold_categories,
    compute_weekly_thresholds,
    week_start,
)
from tests.factories import deals_frame, make_deal


def weeks_frame(totals, rates):
    return pd.DataFrame(
        {
            "week_start": [date(2024, 1, 1) + timedelta(weeks=i) for i in range(len(totals))],
            "total_deals": totals,
            "settled_deals": [0] * len(totals),
            "converted_deals": [0] * len(totals),
            "settled_rate": rates,
            "conversion_rate": [r / 2 for r in rates],
        }
    )


class TestWeekStart:
    def test_sunday_rolls_back_to_monday(self):
        assert week_start(date(2024, 1, 7)) == date(2024, 1, 1)

    def test_monday_is_its_own_week_start(self):
        assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)

    def test_midweek(self):
        assert week_start(date(2024, 1, 3)) == date(2024, 1, 1)


class TestBucketDealsByWeek:
    def test_groups_by_monday_and_computes_rates(self):
        deals = deals_frame(
            make_deal(deal_id="1", latest_date="2024-01-01", **{"6. Settled": "2024-01-01"}),
            make_deal(deal_id="2", latest_date="2024-01-07", **{"2. Assessment": "x"}),
            make_deal(deal_id="3", latest_date="2024-01-07"),
            make_deal(deal_id="4", latest_date="2024-01-08"),
        )
        weeks = bucket_deals_by_week(deals)
        assert weeks["week_start"].tolist() == [date(2024, 1, 1), date(2024, 1, 8)]
        first = weeks.iloc[0]
        assert first["total_deals"] == 3
        assert first["settled_deals"] == 1
        assert first["converted_deals"] == 2
        assert first["settled_rate"] == pytest.approx(100 / 3)
        assert first["conversion_rate"] == pytest.approx(200 / 3)

    def test_undated_deals_are_skipped(self):
        deals = deals_frame(make_deal(deal_id="1"), make_deal(deal_id="2", latest_date="bad"))
        assert bucket_deals_by_week(deals).empty


class TestThresholdCategories:
    def test_partitions_by_weekly_total(self):
        weeks = weeks_frame([5, 25, 15, 40], [10.0, 40.0, 30.0, 20.0])
        cats = compute_threshold_categories(weeks, 20, "settled")
        below = cats[cats["category"] == "below"].iloc[0]
        above = cats[cats["category"] == "at_or_above"].iloc[0]
        assert below["week_count"] == 2
        assert below["total_deals"] == 20
        assert above["week_count"] == 2
        assert above["total_deals"] == 65

    def test_average_is_mean_of_weekly_rates_not_pooled(self):
        # pooled settled rate below would be (1 + 6) / (2 + 18) = 35%
        weeks = weeks_frame([2, 18], [50.0, 33.3])
        weeks["settled_deals"] = [1, 6]
        cats = compute_threshold_categories(weeks, 20, "settled")
        assert len(cats) == 1
        assert cats.iloc[0]["avg_rate"] == pytest.approx((50.0 + 33.3) / 2)

    def test_rate_mode_selects_conversion(self):
        weeks = weeks_frame([5, 15], [40.0, 60.0])
        cats = compute_threshold_categories(weeks, 20, "conversion")
        assert cats.iloc[0]["avg_rate"] == pytest.approx(25.0)

    def test_threshold_is_inclusive_on_upper_side(self):
        cats = compute_threshold_categories(weeks_frame([20], [10.0]), 20)
        assert cats["category"].tolist() == ["at_or_above"]

    def test_empty_category_is_omitted(self):
        cats = compute_threshold_categories(weeks_frame([1, 2, 3], [0.0, 0.0, 0.0]), 20)
        assert cats["category"].tolist() == ["below"]

    def test_no_weeks(self):
        cats = compute_threshold_categories(pd.DataFrame(), 20)
        assert cats.empty
        assert list(cats.columns) == CATEGORY_COLUMNS


class TestComputeWeeklyThresholdsPayload:
    def test_scoped_to_selected_broker(self, sample_deals):
        filters = DealFilters(selected_broker="Alice Chen", thresholds=Thresholds(weekly_deals=5))
        ctx = prepare_context(filters, sample_deals)
        payload = compute_weekly_thresholds(filters, ctx)
        alice_total = int((sample_deals["broker_name"] == "Alice Chen").sum())
        assert sum(w["total_deals"] for w in payload["weeks"]) == alice_total
        assert sum(c["week_count"] for c in payload["categories"]) == len(payload["weeks"])
        assert all(isinstance(w["week_start"], str) for w in payload["weeks"])
        assert "threshold_categories" in payload["charts"]
