from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from foresight.models.enums import ForecastType


class LeaderboardView(str, Enum):
    USER = "user"
    GROUP = "group"
    CATEGORY = "category"
    FORECAST = "forecast"


class LeaderboardFilters(BaseModel):
    forecast_ids: List[int] = Field(default_factory=list)
    category_ids: List[int] = Field(default_factory=list)
    types: List[ForecastType] = Field(default_factory=list)
    due_from: Optional[datetime] = None
    due_to: Optional[datetime] = None
    recent_count: Optional[int] = Field(default=None, ge=1)
    min_forecasts: Optional[int] = Field(default=None, ge=0)
    sort_by: str = "accuracy_rate"
    sort_dir: Literal["asc", "desc"] = "desc"

    @model_validator(mode="after")
    def _date_range(self):
        if self.due_from and self.due_to and self.due_from > self.due_to:
            raise ValueError("due_from must be on or before due_to")
        return self


class LeaderboardEntry(BaseModel):
    """One ranked row; the key columns depend on the view."""

    rank: int = 0
    key: int
    label: str
    completed_predictions: int = 0
    correct_predictions: int = 0
    accuracy_rate: Optional[float] = None
    avg_brier_score: Optional[float] = None
    avg_abs_actual_error_pct: Optional[float] = None
    median_abs_actual_error_pct: Optional[float] = None
    total_equity: float = 0.0
    total_debt: float = 0.0
    total_investment: float = 0.0
    total_net_profit: float = 0.0
    roi_real: Optional[float] = None
    avg_roi: Optional[float] = None
    median_roi: Optional[float] = None
    total_forecast_time: float = 0.0
    avg_forecast_time: Optional[float] = None
    profit_per_hour: Optional[float] = None
    member_count: Optional[int] = None
    forecast_count: Optional[int] = None
    participant_count: Optional[int] = None
    individual_participants: Optional[int] = None
    group_participants: Optional[int] = None
