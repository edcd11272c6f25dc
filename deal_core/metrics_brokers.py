from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from deal_core.charts import to_vega_spec
from deal_core.data import converted_mask, deal_values, settled_mask
from deal_core.filters import DealFilters, RankMode

BROKER_COLUMNS = [
    "broker_name",
    "total_deals",
    "settled_deals",
    "settled_rate",
    "settled_value",
    "avg_deal_value",
    "converted_deals",
    "conversion_rate",
]

SORT_COLUMNS = {"settled": "settled_value", "conversion": "conversion_rate"}


def _safe_pct(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    return (numerator / denominator.where(denominator > 0) * 100).fillna(0.0).astype(float)


def compute_broker_performance(deals: pd.DataFrame, mode: RankMode = "settled") -> pd.DataFrame:
    if deals is None or deals.empty:
        return pd.DataFrame(columns=BROKER_COLUMNS)

    base = pd.DataFrame(
        {
            "broker_name": deals["broker_name"],
            "settled": settled_mask(deals),
            "converted": converted_mask(deals),
            "deal_value": deal_values(deals),
        }
    )
    base["settled_amount"] = base["deal_value"].where(base["settled"], 0.0)

    perf = (
        base.groupby("broker_name", sort=False, dropna=False)
        .agg(
            total_deals=("settled", "size"),
            settled_deals=("settled", "sum"),
            settled_value=("settled_amount", "sum"),
            converted_deals=("converted", "sum"),
        )
        .reset_index()
    )
    perf[["total_deals", "settled_deals", "converted_deals"]] = perf[
        ["total_deals", "settled_deals", "converted_deals"]
    ].astype(int)
    perf["settled_value"] = perf["settled_value"].astype(float)
    perf["settled_rate"] = _safe_pct(perf["settled_deals"], perf["total_deals"])
    perf["conversion_rate"] = _safe_pct(perf["converted_deals"], perf["total_deals"])
    perf["avg_deal_value"] = (
        (perf["settled_value"] / perf["settled_deals"].where(perf["settled_deals"] > 0)).fillna(0.0).astype(float)
    )

    sort_col = SORT_COLUMNS.get(mode, "settled_value")
    return perf[BROKER_COLUMNS].sort_values(sort_col, ascending=False, kind="stable").reset_index(drop=True)


def filter_by_minimum_deals(performances: pd.DataFrame, min_deals: int = 5) -> pd.DataFrame:
    if performances.empty:
        return performances.copy()
    return performances[performances["total_deals"] >= min_deals].reset_index(drop=True)


def performance_status(settled_rate: float, conversion_rate: float, *, settled_threshold: float, conversion_threshold: float) -> str:
    settled_ok = settled_rate >= settled_threshold
    conversion_ok = conversion_rate >= conversion_threshold
    if settled_ok and conversion_ok:
        return "excellent"
    if settled_ok or conversion_ok:
        return "good"
    return "needs-improvement"


def summarize_broker_performance(
    performances: pd.DataFrame, *, settled_threshold: float = 20.0, conversion_threshold: float = 50.0
) -> Dict[str, Any]:
    total = int(len(performances))
    if total == 0:
        return {
            "total_brokers": 0,
            "above_settled_threshold": 0,
            "above_conversion_threshold": 0,
            "avg_settled_rate": 0.0,
            "avg_conversion_rate": 0.0,
        }
    return {
        "total_brokers": total,
        "above_settled_threshold": int((performances["settled_rate"] >= settled_threshold).sum()),
        "above_conversion_threshold": int((performances["conversion_rate"] >= conversion_threshold).sum()),
        "avg_settled_rate": float(performances["settled_rate"].mean()),
        "avg_conversion_rate": float(performances["conversion_rate"].mean()),
    }


def compute_brokers(filters: DealFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_deals", pd.DataFrame())
    t = filters.thresholds

    perf = compute_broker_performance(df, filters.mode)
    eligible = filter_by_minimum_deals(perf, t.min_deals)
    summary = summarize_broker_performance(
        eligible, settled_threshold=t.settled_rate, conversion_threshold=t.conversion_rate
    )
    if eligible.empty:
        return {"filters": asdict(filters), "summary": summary, "brokers": [], "charts": {}}

    table = eligible.copy()
    table["status"] = [
        performance_status(s, c, settled_threshold=t.settled_rate, conversion_threshold=t.conversion_rate)
        for s, c in zip(table["settled_rate"], table["conversion_rate"])
    ]
    table.insert(0, "rank", range(1, len(table) + 1))

    metric_col = SORT_COLUMNS.get(filters.mode, "settled_value")
    metric_format = "$,.0f" if metric_col == "settled_value" else ".1f"
    hover = alt.selection_point(fields=["broker_name"], on="mouseover", empty="all")
    bar = (
        alt.Chart(table)
        .mark_bar()
        .encode(
            x=alt.X("broker_name:N", title="Broker", sort=None, axis=alt.Axis(grid=False)),
            y=alt.Y(f"{metric_col}:Q", axis=alt.Axis(format=metric_format, gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("status:N", title="Status"),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.6)),
            tooltip=[
                alt.Tooltip("broker_name", title="Broker"),
                alt.Tooltip("total_deals:Q", title="Deals"),
                alt.Tooltip("settled_rate:Q", title="Settled %", format=".1f"),
                alt.Tooltip("conversion_rate:Q", title="Conversion %", format=".1f"),
                alt.Tooltip("settled_value:Q", title="Settled Value", format="$,.0f"),
            ],
        )
        .add_params(hover)
    )
    return {
        "filters": asdict(filters),
        "summary": summary,
        "brokers": table.to_dict(orient="records"),
        "charts": {"brokers": to_vega_spec(bar)},
    }
