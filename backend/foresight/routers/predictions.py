# foresight/routers/predictions.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import action_error_from, action_ok, meta_now, ok, validate_payload
from foresight.schemas.predictions import CreatePredictionIn, UpdatePredictionIn
from foresight.services import predictions as svc

router = APIRouter(prefix="/api/predictions", tags=["predictions"])


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_prediction(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    """Submit an individual prediction, or one on behalf of the caller's group."""
    try:
        data = validate_payload(CreatePredictionIn, payload)
        prediction = svc.create_prediction(db, ctx, data)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.prediction_out(prediction), status_code=status.HTTP_201_CREATED)


@router.patch("/{prediction_id}")
def edit_prediction(
    prediction_id: int,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(UpdatePredictionIn, payload)
        prediction = svc.update_prediction(db, ctx, prediction_id, data)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.prediction_out(prediction))


@router.get("/mine")
def my_predictions(
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    rows = svc.list_user_predictions(db, ctx.user_id)
    return ok(
        data=[svc.prediction_out(p) for p in rows],
        meta=meta_now(organization_id=ctx.organization_id),
    )


@router.get("/mine/metrics")
def my_prediction_metrics(
    limit: int = Query(50, ge=1, le=500),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    return ok(
        data=svc.user_prediction_metrics(db, ctx.user_id, ctx.organization_id, limit=limit),
        meta=meta_now(organization_id=ctx.organization_id, limit=limit),
    )
