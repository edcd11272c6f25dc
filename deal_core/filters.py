from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional

import pandas as pd

ALL = "all"

RankMode = Literal["settled", "conversion"]
RollingAverageMode = Literal["always-defined", "full-window-only"]

RANK_MODES = ("settled", "conversion")
ROLLING_AVERAGE_MODES = ("always-defined", "full-window-only")

WEEKLY_DEALS_MAX = 60


@dataclass(frozen=True)
class Thresholds:
    min_deals: int = 5
    weekly_deals: int = 20
    settled_rate: float = 20.0
    conversion_rate: float = 50.0


@dataclass(frozen=True)
class DealFilters:
    selected_broker: str = ALL
    selected_year: str = ALL
    mode: RankMode = "settled"
    rate_mode: RankMode = "settled"
    rolling_average_mode: RollingAverageMode = "always-defined"
    window_days: int = 30
    chart_points: int = 90
    thresholds: Thresholds = field(default_factory=Thresholds)


def _as_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return default


def _as_float(value: object, default: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except Exception:
        return default
    return default if pd.isna(out) else out


def _choice(value: object, options: Iterable[str], default: str) -> str:
    s = str(value).strip() if value is not None else ""
    return s if s in set(options) else default


def normalize_filters(
    raw: dict,
    *,
    available_brokers: Optional[List[str]] = None,
    available_years: Optional[List[str]] = None,
) -> DealFilters:
    broker = str(raw.get("selected_broker") or ALL).strip() or ALL
    if available_brokers is not None and broker != ALL and broker not in set(available_brokers):
        broker = ALL

    year = str(raw.get("selected_year") or ALL).strip() or ALL
    if available_years is not None and year != ALL and year not in set(available_years):
        year = ALL

    t = raw.get("thresholds") or {}
    thresholds = Thresholds(
        min_deals=max(0, _as_int(t.get("min_deals", 5), 5)),
        weekly_deals=max(0, min(WEEKLY_DEALS_MAX, _as_int(t.get("weekly_deals", 20), 20))),
        settled_rate=_as_float(t.get("settled_rate", 20.0), 20.0),
        conversion_rate=_as_float(t.get("conversion_rate", 50.0), 50.0),
    )

    return DealFilters(
        selected_broker=broker,
        selected_year=year,
        mode=_choice(raw.get("mode"), RANK_MODES, "settled"),  # type: ignore[arg-type]
        rate_mode=_choice(raw.get("rate_mode"), RANK_MODES, "settled"),  # type: ignore[arg-type]
        rolling_average_mode=_choice(
            raw.get("rolling_average_mode"), ROLLING_AVERAGE_MODES, "always-defined"
        ),  # type: ignore[arg-type]
        window_days=max(1, _as_int(raw.get("window_days", 30), 30)),
        chart_points=max(1, _as_int(raw.get("chart_points", 90), 90)),
        thresholds=thresholds,
    )

