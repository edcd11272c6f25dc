from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ThresholdsModel(BaseModel):
    min_deals: int = 5
    weekly_deals: int = 20
    settled_rate: float = 20.0
    conversion_rate: float = 50.0


class DealFiltersModel(BaseModel):
    selected_broker: str = "all"
    selected_year: str = "all"
    mode: Literal["settled", "conversion"] = "settled"
    rate_mode: Literal["settled", "conversion"] = "settled"
    rolling_average_mode: Literal["always-defined", "full-window-only"] = "always-defined"
    window_days: int = 30
    chart_points: int = 90
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)

