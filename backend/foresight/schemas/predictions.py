from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PredictionFields(BaseModel):
    value: str = Field(min_length=1, max_length=255)
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    reasoning: Optional[str] = Field(default=None, max_length=5000)
    method: Optional[str] = Field(default=None, max_length=100)
    estimated_time: Optional[int] = Field(default=None, ge=0, description="Minutes spent")
    equity_investment: Optional[float] = Field(default=None, ge=0)
    debt_financing: Optional[float] = Field(default=None, ge=0)


class CreatePredictionIn(PredictionFields):
    forecast_id: int
    group_id: Optional[int] = None


class UpdatePredictionIn(PredictionFields):
    pass


class PredictionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    forecast_id: int
    user_id: int
    group_id: Optional[int] = None
    value: str
    confidence: Optional[int] = None
    reasoning: Optional[str] = None
    method: Optional[str] = None
    estimated_time: Optional[int] = None
    equity_investment: Optional[float] = None
    debt_financing: Optional[float] = None
    is_correct: Optional[bool] = None
    actual_error: Optional[float] = None
    absolute_actual_error_pct: Optional[float] = None
    absolute_forecast_error_pct: Optional[float] = None
    brier_score: Optional[float] = None
    net_profit: Optional[float] = None
    interest_on_debt: Optional[float] = None
    roi: Optional[float] = None
    created_at: datetime
