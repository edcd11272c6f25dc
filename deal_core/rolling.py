"""Date-bucketed deal counts and trailing-window averages for trend charts.

Two averaging strategies are supported and selected by name:

- ``always-defined``: sum every count dated inside ``[target - window, target]``
  and divide by ``window_days``. Every point gets a value, so early points are
  biased low while history is still short.
- ``full-window-only``: walk each calendar day of the same window and divide
  by ``window_days``, but only once ``window_days`` days of history exist
  before the target. Earlier points are ``None``.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Mapping, Optional

import pandas as pd

from deal_core.data import DealPredicate, with_deal_dates
from deal_core.filters import RollingAverageMode

ALWAYS_DEFINED: RollingAverageMode = "always-defined"
FULL_WINDOW_ONLY: RollingAverageMode = "full-window-only"


def build_date_counts(deals: pd.DataFrame, predicate: DealPredicate) -> pd.Series:
    """Distinct ``deal_id`` count per deal date for deals matching ``predicate``."""
    if deals.empty:
        return pd.Series(dtype="int64")
    dated = with_deal_dates(deals[predicate(deals)])
    dated = dated[dated["deal_date"].notna()]
    if dated.empty:
        return pd.Series(dtype="int64")
    return dated.groupby("deal_date")["deal_id"].nunique()


def compute_rolling_average(
    date_counts: pd.Series,
    target_date: date,
    *,
    window_days: int = 30,
    mode: RollingAverageMode = ALWAYS_DEFINED,
    history_start: Optional[date] = None,
) -> Optional[float]:
    window_start = target_date - timedelta(days=window_days)

    if mode == FULL_WINDOW_ONLY:
        if history_start is None:
            history_start = min(date_counts.index) if len(date_counts) else None
        if history_start is None or (target_date - history_start).days < window_days:
            return None
        counts = date_counts.to_dict()
        total = 0
        for offset in range(window_days + 1):
            total += counts.get(window_start + timedelta(days=offset), 0)
        return float(total) / window_days

    if date_counts.empty:
        return 0.0
    in_window = [d for d in date_counts.index if window_start <= d <= target_date]
    return float(date_counts.loc[in_window].sum()) / window_days


def build_chart_series(
    deals: pd.DataFrame,
    predicates: Mapping[str, DealPredicate],
    *,
    window_days: int = 30,
    limit_points: Optional[int] = 90,
    mode: RollingAverageMode = ALWAYS_DEFINED,
) -> pd.DataFrame:
    """One row per distinct deal date, one rolling-average column per predicate."""
    columns: List[str] = ["date"] + list(predicates)
    if deals.empty:
        return pd.DataFrame(columns=columns)

    all_dates = sorted({d for d in with_deal_dates(deals)["deal_date"] if d is not None})
    if not all_dates:
        return pd.DataFrame(columns=columns)

    counts = {name: build_date_counts(deals, pred) for name, pred in predicates.items()}
    rows = []
    for d in all_dates:
        row = {"date": d.isoformat()}
        for name, series in counts.items():
            row[name] = compute_rolling_average(
                series, d, window_days=window_days, mode=mode, history_start=all_dates[0]
            )
        rows.append(row)

    out = pd.DataFrame(rows, columns=columns)
    if limit_points is not None:
        out = out.tail(limit_points).reset_index(drop=True)
    return out
