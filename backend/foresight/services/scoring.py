"""Score predictions once a forecast's actual value is known.

Binary and categorical predictions are right or wrong and carry a Brier score
derived from the stated confidence. Continuous predictions carry signed and
relative errors. Every prediction with an investment gets a profit and ROI.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from foresight.config import get_settings
from foresight.core.security import RequestContext
from foresight.errors import BusinessRuleError
from foresight.models import Prediction
from foresight.models.enums import ForecastType
from foresight.observability.instrument import log_job
from foresight.services.forecasts import get_forecast, is_open, normalize_value, value_error
from foresight.utils.dates import utcnow
from foresight.utils.numeric import parse_finite, safe_divide

logger = structlog.get_logger(__name__)


@dataclass
class PredictionScore:
    is_correct: Optional[bool] = None
    actual_error: Optional[float] = None
    absolute_actual_error_pct: Optional[float] = None
    absolute_forecast_error_pct: Optional[float] = None
    brier_score: Optional[float] = None
    net_profit: Optional[float] = None
    interest_on_debt: Optional[float] = None
    roi: Optional[float] = None


def _brier(confidence: Optional[int], correct: bool) -> Optional[float]:
    if confidence is None:
        return None
    p = confidence / 100.0
    o = 1.0 if correct else 0.0
    return (p - o) ** 2


def score_prediction(
    forecast_type: ForecastType,
    value: str,
    actual: str,
    *,
    confidence: Optional[int] = None,
    equity: Optional[float] = None,
    debt: Optional[float] = None,
    tolerance: float = 0.0,
    interest_rate: float = 0.0,
) -> PredictionScore:
    """Pure scoring of one prediction against an already-normalized actual value."""
    score = PredictionScore()
    relative_error: Optional[float] = None

    if ForecastType(forecast_type) == ForecastType.CONTINUOUS:
        v = parse_finite(value)
        a = parse_finite(actual)
        if v is None or a is None:
            return score
        diff = v - a
        score.actual_error = diff
        score.absolute_actual_error_pct = safe_divide(abs(diff), abs(a))
        score.absolute_forecast_error_pct = safe_divide(abs(diff), abs(v))
        if score.absolute_actual_error_pct is not None:
            relative_error = score.absolute_actual_error_pct
        else:
            # actual of zero: exact hit or total miss
            relative_error = 0.0 if diff == 0 else 1.0
        score.is_correct = relative_error <= tolerance
    else:
        score.is_correct = value.strip().lower() == actual.strip().lower()
        score.brier_score = _brier(confidence, score.is_correct)

    if equity is None and debt is None:
        return score

    equity = float(equity or 0.0)
    debt = float(debt or 0.0)
    investment = equity + debt
    if relative_error is not None:
        score.net_profit = investment * (1 - 2 * min(relative_error, 1.0))
    else:
        score.net_profit = investment if score.is_correct else -investment
    score.interest_on_debt = debt * interest_rate
    score.roi = safe_divide(score.net_profit - score.interest_on_debt, investment)
    return score


def apply_score(prediction: Prediction, score: PredictionScore) -> None:
    for field, value in asdict(score).items():
        setattr(prediction, field, value)
    prediction.scored_at = utcnow()


@log_job("forecast.scoring")
def record_actual_value(
    db: Session, ctx: RequestContext, forecast_id: int, actual_value: str
) -> Dict[str, Any]:
    """Store the actual outcome and (re)score every prediction on the forecast."""
    forecast = get_forecast(db, ctx, forecast_id)
    if is_open(forecast):
        raise BusinessRuleError(
            {"actual_value": ["The actual value can only be recorded after the forecast closes."]}
        )
    normalized = normalize_value(forecast, actual_value)
    if normalized is None:
        raise BusinessRuleError({"actual_value": [value_error(forecast, actual_value)]})

    settings = get_settings()
    forecast.actual_value = normalized
    correct = 0
    for prediction in forecast.predictions:
        score = score_prediction(
            forecast.type,
            prediction.value,
            normalized,
            confidence=prediction.confidence,
            equity=prediction.equity_investment,
            debt=prediction.debt_financing,
            tolerance=settings.SCORING_CONTINUOUS_TOLERANCE,
            interest_rate=settings.SCORING_DEBT_INTEREST_RATE,
        )
        apply_score(prediction, score)
        correct += int(bool(score.is_correct))

    db.commit()
    scored = len(forecast.predictions)
    logger.info(
        "forecast.scored",
        forecast_id=forecast.id,
        actual_value=normalized,
        scored=scored,
        correct=correct,
    )
    return {
        "forecast_id": forecast.id,
        "actual_value": normalized,
        "scored": scored,
        "correct": correct,
    }
