"""Prediction submission, updates and reads.

Validation collects every applicable message into a field-keyed dict before
anything is written. The ``(forecast_id, user_id)`` and ``(forecast_id,
group_id)`` unique constraints settle concurrent duplicate submissions: an
insert that loses the race surfaces as the same "already submitted" error.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext
from foresight.errors import (
    BusinessRuleError,
    FieldErrors,
    FORM_KEY,
    NotFoundError,
    PermissionDeniedError,
    add_error,
)
from foresight.models import Forecast, Group, GroupMember, Prediction
from foresight.observability.metrics import PREDICTIONS_SUBMITTED
from foresight.schemas.predictions import CreatePredictionIn, PredictionOut, UpdatePredictionIn
from foresight.services.forecasts import is_open, normalize_value, value_error
from foresight.services.groups import validate_group_access

logger = structlog.get_logger(__name__)

MSG_INDIVIDUAL_EXISTS = (
    "You have already submitted an individual prediction for this forecast. "
    "Please update your existing prediction instead."
)
MSG_ALREADY_PREDICTED = "You have already submitted a prediction for this forecast."
MSG_CLOSED_SUBMIT = "This forecast has already closed. Predictions can no longer be submitted."
MSG_CLOSED_UPDATE = "This forecast has already closed. Predictions can no longer be updated."
MSG_GROUP_NOT_FOUND = "Selected group was not found."
MSG_GROUP_OTHER_ORG = "This group does not belong to the forecast's organization."
MSG_NOT_MEMBER = "You must belong to this group in order to submit a group prediction."
MSG_GROUP_EXISTS = "This group has already submitted a prediction for this forecast."
MSG_OWN_GROUP_EXISTS = (
    "Your group has already submitted a prediction for this forecast. "
    "You cannot submit an individual prediction."
)
MSG_MEMBER_INDIVIDUAL_EXISTS = (
    "A member of this group has already submitted an individual prediction for this forecast."
)

EDITABLE_FIELDS = (
    "value",
    "confidence",
    "reasoning",
    "method",
    "estimated_time",
    "equity_investment",
    "debt_financing",
)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_user_prediction_for_forecast(db: Session, user_id: int, forecast_id: int) -> Optional[Prediction]:
    return db.execute(
        select(Prediction).where(Prediction.forecast_id == forecast_id, Prediction.user_id == user_id)
    ).scalar_one_or_none()


def get_group_prediction_for_forecast(db: Session, group_id: int, forecast_id: int) -> Optional[Prediction]:
    return db.execute(
        select(Prediction).where(Prediction.forecast_id == forecast_id, Prediction.group_id == group_id)
    ).scalar_one_or_none()


def get_prediction(db: Session, ctx: RequestContext, prediction_id: int) -> Prediction:
    prediction = db.get(Prediction, prediction_id)
    if prediction is None or prediction.forecast.organization_id != ctx.organization_id:
        raise NotFoundError("Prediction not found")
    return prediction


def list_forecast_predictions(db: Session, forecast_id: int) -> List[Prediction]:
    return (
        db.execute(
            select(Prediction)
            .where(Prediction.forecast_id == forecast_id)
            .order_by(Prediction.created_at.desc(), Prediction.id.desc())
        )
        .scalars()
        .all()
    )


def list_user_predictions(db: Session, user_id: int) -> List[Prediction]:
    return (
        db.execute(
            select(Prediction)
            .where(Prediction.user_id == user_id)
            .order_by(Prediction.created_at.desc(), Prediction.id.desc())
        )
        .scalars()
        .all()
    )


def forecast_ranking(db: Session, forecast_id: int) -> List[Prediction]:
    """Predictions on one forecast, most confident first, earliest first among ties."""
    return (
        db.execute(
            select(Prediction)
            .where(Prediction.forecast_id == forecast_id)
            .order_by(
                Prediction.confidence.desc().nulls_last(),
                Prediction.created_at.asc(),
                Prediction.id.asc(),
            )
        )
        .scalars()
        .all()
    )


def user_prediction_metrics(
    db: Session, user_id: int, organization_id: int, limit: int = 50
) -> List[Dict[str, Any]]:
    """Relative errors of a user's scored continuous predictions, oldest first, for charts."""
    rows = db.execute(
        select(Prediction.id, Prediction.absolute_actual_error_pct)
        .join(Forecast, Forecast.id == Prediction.forecast_id)
        .where(
            Prediction.user_id == user_id,
            Forecast.organization_id == organization_id,
            Prediction.absolute_actual_error_pct.is_not(None),
        )
        .order_by(Prediction.created_at.asc(), Prediction.id.asc())
        .limit(limit)
    ).all()
    return [{"id": r.id, "absolute_actual_error_pct": r.absolute_actual_error_pct} for r in rows]


def prediction_out(prediction: Prediction) -> Dict[str, Any]:
    data = PredictionOut.model_validate(prediction).model_dump()
    data["user_name"] = prediction.user.name if prediction.user else None
    data["group_name"] = prediction.group.name if prediction.group else None
    return data


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_prediction_creation(
    db: Session,
    ctx: RequestContext,
    data: CreatePredictionIn,
    now: Optional[datetime] = None,
) -> FieldErrors:
    """Business rules for a new prediction; an empty dict means it may be written."""
    errors: FieldErrors = {}

    forecast = db.get(Forecast, data.forecast_id)
    if forecast is None or forecast.organization_id != ctx.organization_id:
        add_error(errors, FORM_KEY, "Forecast not found")
        return errors

    if not is_open(forecast, now):
        add_error(errors, FORM_KEY, MSG_CLOSED_SUBMIT)

    existing = get_user_prediction_for_forecast(db, ctx.user_id, forecast.id)
    membership = db.execute(
        select(GroupMember).where(GroupMember.user_id == ctx.user_id)
    ).scalar_one_or_none()

    if existing is not None and existing.group_id is None:
        add_error(errors, FORM_KEY, MSG_INDIVIDUAL_EXISTS)

    if data.group_id is not None:
        group = db.get(Group, data.group_id)
        if group is None:
            add_error(errors, FORM_KEY, MSG_GROUP_NOT_FOUND)
        elif group.organization_id != forecast.organization_id:
            add_error(errors, FORM_KEY, MSG_GROUP_OTHER_ORG)

        if membership is None or membership.group_id != data.group_id:
            add_error(errors, FORM_KEY, MSG_NOT_MEMBER)

        if group is not None:
            if get_group_prediction_for_forecast(db, group.id, forecast.id) is not None:
                add_error(errors, FORM_KEY, MSG_GROUP_EXISTS)
            elif existing is not None and existing.group_id is not None:
                # submitted for a former group
                add_error(errors, FORM_KEY, MSG_ALREADY_PREDICTED)

            other_member_individual = db.execute(
                select(Prediction.id)
                .join(GroupMember, GroupMember.user_id == Prediction.user_id)
                .where(
                    GroupMember.group_id == group.id,
                    GroupMember.user_id != ctx.user_id,
                    Prediction.forecast_id == forecast.id,
                    Prediction.group_id.is_(None),
                )
            ).first()
            if other_member_individual is not None:
                add_error(errors, FORM_KEY, MSG_MEMBER_INDIVIDUAL_EXISTS)
    else:
        own_group_prediction = None
        if membership is not None:
            own_group_prediction = get_group_prediction_for_forecast(db, membership.group_id, forecast.id)
        if own_group_prediction is not None:
            add_error(errors, FORM_KEY, MSG_OWN_GROUP_EXISTS)
        elif existing is not None and existing.group_id is not None:
            add_error(errors, FORM_KEY, MSG_ALREADY_PREDICTED)

    message = value_error(forecast, data.value)
    if message:
        add_error(errors, "value", message)

    return errors


def validate_prediction_update(
    db: Session,
    ctx: RequestContext,
    prediction: Prediction,
    data: UpdatePredictionIn,
    now: Optional[datetime] = None,
) -> FieldErrors:
    errors: FieldErrors = {}
    forecast = prediction.forecast
    if forecast is None:
        add_error(errors, FORM_KEY, "Forecast not found")
        return errors
    if not is_open(forecast, now):
        add_error(errors, FORM_KEY, MSG_CLOSED_UPDATE)
    message = value_error(forecast, data.value)
    if message:
        add_error(errors, "value", message)
    return errors


def _can_edit(db: Session, ctx: RequestContext, prediction: Prediction) -> bool:
    if prediction.user_id == ctx.user_id:
        return True
    return prediction.group_id is not None and validate_group_access(db, prediction.group_id, ctx.user_id)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_prediction(db: Session, ctx: RequestContext, data: CreatePredictionIn) -> Prediction:
    errors = validate_prediction_creation(db, ctx, data)
    if errors:
        logger.info(
            "prediction.rejected",
            forecast_id=data.forecast_id,
            user_id=ctx.user_id,
            group_id=data.group_id,
            fields=sorted(errors),
        )
        raise BusinessRuleError(errors)

    forecast = db.get(Forecast, data.forecast_id)
    fields = data.model_dump(include=set(EDITABLE_FIELDS))
    fields["value"] = normalize_value(forecast, data.value)
    prediction = Prediction(
        forecast_id=forecast.id,
        user_id=ctx.user_id,
        group_id=data.group_id,
        **fields,
    )
    db.add(prediction)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        message = MSG_GROUP_EXISTS if data.group_id is not None else MSG_INDIVIDUAL_EXISTS
        logger.warning(
            "prediction.duplicate_insert",
            forecast_id=data.forecast_id,
            user_id=ctx.user_id,
            group_id=data.group_id,
        )
        raise BusinessRuleError({FORM_KEY: [message]}) from exc
    db.refresh(prediction)

    scope = "group" if prediction.is_group_prediction else "individual"
    PREDICTIONS_SUBMITTED.labels(scope=scope).inc()
    logger.info(
        "prediction.created",
        prediction_id=prediction.id,
        forecast_id=prediction.forecast_id,
        user_id=ctx.user_id,
        scope=scope,
    )
    return prediction


def update_prediction(
    db: Session, ctx: RequestContext, prediction_id: int, data: UpdatePredictionIn
) -> Prediction:
    prediction = get_prediction(db, ctx, prediction_id)
    if not _can_edit(db, ctx, prediction):
        raise PermissionDeniedError("You are not authorized to update this prediction.")

    errors = validate_prediction_update(db, ctx, prediction, data)
    if errors:
        raise BusinessRuleError(errors)

    # Fields left out of the payload keep their stored values
    fields = data.model_dump(include=set(EDITABLE_FIELDS), exclude_unset=True)
    fields["value"] = normalize_value(prediction.forecast, data.value)
    for name, value in fields.items():
        setattr(prediction, name, value)
    db.commit()
    db.refresh(prediction)
    logger.info("prediction.updated", prediction_id=prediction.id, user_id=ctx.user_id)
    return prediction
