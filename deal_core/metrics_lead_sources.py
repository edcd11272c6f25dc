from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from deal_core.charts import rolling_trend_chart, to_vega_spec
from deal_core.data import deal_values, lifex_mask, rednote_mask, settled_status_mask
from deal_core.rolling import build_chart_series
from deal_core.filters import DealFilters

CHART_SERIES = {
    "settled_deals_30day_avg": settled_status_mask,
    "rednote_deals_30day_avg": rednote_mask,
}
CHART_LABELS = {
    "settled_deals_30day_avg": "Settled deals",
    "rednote_deals_30day_avg": "Rednote deals",
}

# (minimum conversion rate, label), highest first
CONVERSION_TIERS = [
    (20.0, "Excellent performance"),
    (15.0, "Good performance"),
    (10.0, "Room for improvement"),
]


def _pct(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def conversion_tier(rate: float) -> str:
    for floor, label in CONVERSION_TIERS:
        if rate >= floor:
            return label
    return "Needs optimization"


def compute_lead_source_summary(deals: pd.DataFrame) -> Dict[str, Any]:
    total = int(len(deals))
    if total == 0:
        return {
            "total_leads": 0,
            "settled_deals": 0,
            "conversion_rate": 0.0,
            "avg_deal_value": 0.0,
            "rednote_leads": 0,
            "lifex_leads": 0,
            "other_leads": 0,
            "rednote_percentage": 0.0,
            "lifex_percentage": 0.0,
            "rednote_conversion_rate": 0.0,
            "lifex_conversion_rate": 0.0,
            "other_conversion_rate": 0.0,
        }

    settled = settled_status_mask(deals)
    rednote = rednote_mask(deals)
    lifex = lifex_mask(deals)
    other = ~rednote & ~lifex
    values = deal_values(deals)
    positive = values[values > 0]

    rednote_leads = int(rednote.sum())
    lifex_leads = int(lifex.sum())
    other_leads = int(other.sum())
    return {
        "total_leads": total,
        "settled_deals": int(settled.sum()),
        "conversion_rate": _pct(int(settled.sum()), total),
        "avg_deal_value": float(positive.mean()) if not positive.empty else 0.0,
        "rednote_leads": rednote_leads,
        "lifex_leads": lifex_leads,
        "other_leads": other_leads,
        "rednote_percentage": _pct(rednote_leads, total),
        "lifex_percentage": _pct(lifex_leads, total),
        "rednote_conversion_rate": _pct(int((rednote & settled).sum()), rednote_leads),
        "lifex_conversion_rate": _pct(int((lifex & settled).sum()), lifex_leads),
        "other_conversion_rate": _pct(int((other & settled).sum()), other_leads),
    }


def lead_source_rows(summary: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Per-source rows for the breakdown table; sources with no leads are skipped."""
    total = summary["total_leads"]
    rows = []
    for key, label in [("rednote", "Rednote"), ("lifex", "LifeX Platform"), ("other", "Other Sources")]:
        leads = summary[f"{key}_leads"]
        if leads <= 0:
            continue
        rate = summary[f"{key}_conversion_rate"]
        rows.append(
            {
                "source": label,
                "leads": leads,
                "share": _pct(leads, total),
                "conversion_rate": rate,
                "tier": conversion_tier(rate),
            }
        )
    return rows


def compute_lead_sources(filters: DealFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_deals", pd.DataFrame())
    summary = compute_lead_source_summary(df)
    series = build_chart_series(
        df,
        CHART_SERIES,
        window_days=filters.window_days,
        limit_points=filters.chart_points,
        mode=filters.rolling_average_mode,
    )

    charts: Dict[str, Any] = {}
    if not series.empty:
        charts["rolling_trend"] = to_vega_spec(
            rolling_trend_chart(series, CHART_LABELS, y_title=f"{filters.window_days}-day average per day")
        )
    return {
        "filters": asdict(filters),
        "summary": summary,
        "sources": lead_source_rows(summary),
        "series": series.to_dict(orient="records"),
        "charts": charts,
    }
