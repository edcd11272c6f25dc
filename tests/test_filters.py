"""Tests for filter normalization."""

from deal_core.filters import DealFilters, Thresholds, normalize_filters


class TestNormalizeFilters:
    def test_defaults(self):
        assert normalize_filters({}) == DealFilters()

    def test_reads_values(self):
        f = normalize_filters(
            {
                "selected_broker": "Alice",
                "selected_year": "2024",
                "mode": "conversion",
                "rate_mode": "conversion",
                "rolling_average_mode": "full-window-only",
                "window_days": "14",
                "chart_points": 60,
                "thresholds": {"min_deals": 3, "weekly_deals": 10, "settled_rate": "25", "conversion_rate": 40},
            },
            available_brokers=["Alice", "Ben"],
            available_years=["2024"],
        )
        assert f.selected_broker == "Alice"
        assert f.selected_year == "2024"
        assert f.mode == "conversion"
        assert f.rate_mode == "conversion"
        assert f.rolling_average_mode == "full-window-only"
        assert f.window_days == 14
        assert f.chart_points == 60
        assert f.thresholds == Thresholds(min_deals=3, weekly_deals=10, settled_rate=25.0, conversion_rate=40.0)

    def test_invalid_choices_fall_back(self):
        f = normalize_filters({"mode": "revenue", "rolling_average_mode": "median", "window_days": "abc"})
        assert f.mode == "settled"
        assert f.rolling_average_mode == "always-defined"
        assert f.window_days == 30

    def test_clamps_thresholds(self):
        f = normalize_filters({"thresholds": {"min_deals": -4, "weekly_deals": 500}, "window_days": 0, "chart_points": -1})
        assert f.thresholds.min_deals == 0
        assert f.thresholds.weekly_deals == 60
        assert f.window_days == 1
        assert f.chart_points == 1

    def test_unknown_broker_and_year_become_all(self):
        f = normalize_filters(
            {"selected_broker": "Zed", "selected_year": "1990"}, available_brokers=["Alice"], available_years=["2024"]
        )
        assert f.selected_broker == "all"
        assert f.selected_year == "all"

    def test_blank_selection_is_all(self):
        f = normalize_filters({"selected_broker": "  ", "selected_year": None})
        assert f.selected_broker == "all"
        assert f.selected_year == "all"
