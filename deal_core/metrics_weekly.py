from __future__ import annotations

from dataclasses import asdict
from datetime import date, timedelta
from typing import Any, Dict

import altair as alt
import pandas as pd

from deal_core.charts import to_vega_spec
from deal_core.data import converted_mask, settled_mask, with_deal_dates
from deal_core.filters import DealFilters, RankMode

WEEK_COLUMNS = ["week_start", "total_deals", "settled_deals", "converted_deals", "settled_rate", "conversion_rate"]
CATEGORY_COLUMNS = ["category", "label", "week_count", "total_deals", "avg_rate"]
RATE_COLUMNS = {"settled": "settled_rate", "conversion": "conversion_rate"}


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day`` (Sunday rolls back six days)."""
    return day - timedelta(days=day.weekday())


def bucket_deals_by_week(deals: pd.DataFrame) -> pd.DataFrame:
    if deals is None or deals.empty:
        return pd.DataFrame(columns=WEEK_COLUMNS)
    dated = with_deal_dates(deals)
    dated["settled"] = settled_mask(dated)
    dated["converted"] = converted_mask(dated)
    dated = dated[dated["deal_date"].notna()]
    if dated.empty:
        return pd.DataFrame(columns=WEEK_COLUMNS)

    dated["week_start"] = dated["deal_date"].map(week_start)
    weeks = (
        dated.groupby("week_start")
        .agg(
            total_deals=("settled", "size"),
            settled_deals=("settled", "sum"),
            converted_deals=("converted", "sum"),
        )
        .reset_index()
        .sort_values("week_start")
    )
    weeks[["total_deals", "settled_deals", "converted_deals"]] = weeks[
        ["total_deals", "settled_deals", "converted_deals"]
    ].astype(int)
    weeks["settled_rate"] = weeks["settled_deals"] / weeks["total_deals"] * 100
    weeks["conversion_rate"] = weeks["converted_deals"] / weeks["total_deals"] * 100
    return weeks[WEEK_COLUMNS].reset_index(drop=True)


def compute_threshold_categories(
    weekly_buckets: pd.DataFrame, threshold: int = 20, rate_mode: RankMode = "settled"
) -> pd.DataFrame:
    """Split weeks by deal volume and average each week's own rate per side."""
    if weekly_buckets is None or weekly_buckets.empty:
        return pd.DataFrame(columns=CATEGORY_COLUMNS)

    rate_col = RATE_COLUMNS.get(rate_mode, "settled_rate")
    below = weekly_buckets["total_deals"] < threshold
    rows = []
    for category, label, mask in [
        ("below", f"< {threshold} deals/week", below),
        ("at_or_above", f">= {threshold} deals/week", ~below),
    ]:
        part = weekly_buckets[mask]
        if part.empty:
            continue
        rows.append(
            {
                "category": category,
                "label": label,
                "week_count": int(len(part)),
                "total_deals": int(part["total_deals"].sum()),
                "avg_rate": float(part[rate_col].mean()),
            }
        )
    return pd.DataFrame(rows, columns=CATEGORY_COLUMNS)


def compute_weekly_thresholds(filters: DealFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_deals", pd.DataFrame())
    weeks = bucket_deals_by_week(df)
    categories = compute_threshold_categories(weeks, filters.thresholds.weekly_deals, filters.rate_mode)

    charts: Dict[str, Any] = {}
    if not categories.empty:
        rate_title = "Avg Settled Rate" if filters.rate_mode == "settled" else "Avg Conversion Rate"
        bar = (
            alt.Chart(categories)
            .mark_bar()
            .encode(
                x=alt.X("label:N", title="Weekly Volume", sort=None, axis=alt.Axis(grid=False)),
                y=alt.Y("avg_rate:Q", title=f"{rate_title} (%)", axis=alt.Axis(format=".1f", gridDash=[4, 4], domain=False, ticks=False)),
                color=alt.Color("category:N", legend=None),
                tooltip=[
                    alt.Tooltip("label:N", title="Category"),
                    alt.Tooltip("week_count:Q", title="Weeks"),
                    alt.Tooltip("total_deals:Q", title="Deals"),
                    alt.Tooltip("avg_rate:Q", title=rate_title, format=".1f"),
                ],
            )
        )
        charts["threshold_categories"] = to_vega_spec(bar)

    weeks_out = weeks.assign(week_start=weeks["week_start"].map(lambda d: d.isoformat())) if not weeks.empty else weeks
    return {
        "filters": asdict(filters),
        "broker": filters.selected_broker,
        "weeks": weeks_out.to_dict(orient="records"),
        "categories": categories.to_dict(orient="records"),
        "charts": charts,
    }
