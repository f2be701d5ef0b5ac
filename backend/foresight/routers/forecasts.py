# foresight/routers/forecasts.py
from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_org_admin, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import (
    action_error_from,
    action_ok,
    fail_from,
    meta_now,
    ok,
    validate_payload,
)
from foresight.schemas.forecasts import CreateForecastIn, RecordActualIn
from foresight.services import forecasts as svc
from foresight.services import predictions as prediction_svc
from foresight.services.scoring import record_actual_value

router = APIRouter(prefix="/api/forecasts", tags=["forecasts"])


@router.get("")
def list_forecasts(
    status_filter: Optional[Literal["open", "closed", "resolved"]] = Query(None, alias="status"),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    rows = svc.list_forecasts(db, ctx.organization_id, status_filter)
    return ok(
        data=[svc.forecast_out(f) for f in rows],
        meta=meta_now(organization_id=ctx.organization_id, status=status_filter),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_forecast(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(CreateForecastIn, payload)
        forecast = svc.create_forecast(db, ctx, data)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.forecast_out(forecast), status_code=status.HTTP_201_CREATED)


@router.get("/{forecast_id}")
def read_forecast(
    forecast_id: int,
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        forecast = svc.get_forecast(db, ctx, forecast_id)
    except ForesightError as exc:
        return fail_from(exc)
    data = svc.forecast_out(forecast)
    mine = prediction_svc.get_user_prediction_for_forecast(db, ctx.user_id, forecast_id)
    data["my_prediction"] = prediction_svc.prediction_out(mine) if mine is not None else None
    return ok(data=data, meta=meta_now(organization_id=ctx.organization_id))


@router.post("/{forecast_id}/actual")
def record_actual(
    forecast_id: int,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    """Record the outcome and score every prediction on the forecast."""
    try:
        data = validate_payload(RecordActualIn, payload)
        result = record_actual_value(db, ctx, forecast_id, data.actual_value)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(result)


@router.get("/{forecast_id}/predictions")
def forecast_predictions(
    forecast_id: int,
    order: Literal["recent", "ranking"] = Query("recent"),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        svc.get_forecast(db, ctx, forecast_id)
    except ForesightError as exc:
        return fail_from(exc)
    if order == "ranking":
        rows = prediction_svc.forecast_ranking(db, forecast_id)
    else:
        rows = prediction_svc.list_forecast_predictions(db, forecast_id)
    return ok(
        data=[prediction_svc.prediction_out(p) for p in rows],
        meta=meta_now(organization_id=ctx.organization_id, forecast_id=forecast_id, order=order),
    )
