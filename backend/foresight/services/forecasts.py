from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext
from foresight.errors import BusinessRuleError, FieldErrors, NotFoundError, add_error
from foresight.models import Category, Forecast
from foresight.models.enums import DataType, ForecastType
from foresight.schemas.forecasts import CreateForecastIn, ForecastOut
from foresight.utils.dates import as_utc, is_past, utcnow
from foresight.utils.numeric import parse_finite

logger = structlog.get_logger(__name__)

BINARY_VALUES = ("true", "false")


# ---------------------------------------------------------------------------
# Value interpretation
# ---------------------------------------------------------------------------

def normalize_value(forecast: Forecast, raw: str) -> Optional[str]:
    """Canonical string form of a prediction/actual value, or None when it does not fit the type."""
    text = (raw or "").strip()
    ftype = ForecastType(forecast.type)
    if ftype == ForecastType.BINARY:
        lowered = text.lower()
        return lowered if lowered in BINARY_VALUES else None
    if ftype == ForecastType.CONTINUOUS:
        number = parse_finite(text)
        if number is None:
            return None
        return str(int(number)) if number.is_integer() else repr(number)
    options = forecast.options or []
    return text if text in options else None


def value_error(forecast: Forecast, raw: str) -> Optional[str]:
    if normalize_value(forecast, raw) is not None:
        return None
    ftype = ForecastType(forecast.type)
    if ftype == ForecastType.BINARY:
        return 'Value must be "true" or "false"'
    if ftype == ForecastType.CONTINUOUS:
        return "Value must be a number"
    return "Selected option is not valid for this forecast"


def is_open(forecast: Forecast, now: Optional[datetime] = None) -> bool:
    return not is_past(forecast.due_date, now)


# ---------------------------------------------------------------------------
# Creation rules
# ---------------------------------------------------------------------------

def validate_forecast_rules(
    db: Session,
    organization_id: int,
    *,
    title: str,
    type: ForecastType,
    data_type: Optional[DataType],
    due_date: datetime,
    data_release_date: datetime,
    category_id: int,
    options: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> FieldErrors:
    """Business rules shared by admin creation and the AI assistant; returns field-keyed errors."""
    errors: FieldErrors = {}
    now = now or utcnow()
    due = as_utc(due_date)
    release = as_utc(data_release_date)

    clash = db.execute(
        select(Forecast.id).where(
            Forecast.organization_id == organization_id, Forecast.title == title.strip()
        )
    ).first()
    if clash is not None:
        add_error(errors, "title", "A forecast with this title already exists in your organization")

    category = db.get(Category, category_id)
    if category is None or category.organization_id != organization_id:
        add_error(errors, "category_id", "Category not found in your organization")

    if due <= now:
        add_error(errors, "due_date", "Due date must be in the future")
    if release < due:
        add_error(errors, "data_release_date", "Data release date must be on or after the due date")

    ftype = ForecastType(type)
    if ftype == ForecastType.CATEGORICAL:
        distinct = {o.strip() for o in (options or []) if o and o.strip()}
        if len(distinct) < 2:
            add_error(errors, "options", "CATEGORICAL forecasts require at least two distinct options")
    elif options:
        add_error(errors, "options", "Only CATEGORICAL forecasts can have options")

    if ftype == ForecastType.CONTINUOUS and data_type is None:
        add_error(
            errors,
            "data_type",
            "CONTINUOUS forecasts require a dataType (CURRENCY, PERCENT, INTEGER, NUMBER, or DECIMAL)",
        )
    if ftype != ForecastType.CONTINUOUS and data_type is not None:
        add_error(errors, "data_type", f"{ftype.value} forecasts should not have a dataType")

    return errors


def insert_forecast(
    db: Session,
    ctx: RequestContext,
    *,
    title: str,
    description: Optional[str],
    type: ForecastType,
    data_type: Optional[DataType],
    due_date: datetime,
    data_release_date: datetime,
    category_id: int,
    options: Optional[Sequence[str]] = None,
    commit: bool = True,
) -> Forecast:
    forecast = Forecast(
        title=title.strip(),
        description=(description or "").strip() or None,
        type=ForecastType(type),
        data_type=data_type,
        due_date=as_utc(due_date),
        data_release_date=as_utc(data_release_date),
        options=[o.strip() for o in options] if options else None,
        organization_id=ctx.organization_id,
        category_id=category_id,
        created_by_id=ctx.user_id,
    )
    db.add(forecast)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise BusinessRuleError(
            {"title": ["A forecast with this title already exists in your organization"]}
        ) from exc
    if commit:
        db.commit()
        db.refresh(forecast)
    logger.info(
        "forecast.created",
        forecast_id=forecast.id,
        organization_id=ctx.organization_id,
        forecast_type=forecast.type.value,
    )
    return forecast


def create_forecast(db: Session, ctx: RequestContext, data: CreateForecastIn) -> Forecast:
    errors = validate_forecast_rules(
        db,
        ctx.organization_id,
        title=data.title,
        type=data.type,
        data_type=data.data_type,
        due_date=data.due_date,
        data_release_date=data.data_release_date,
        category_id=data.category_id,
        options=data.options,
    )
    if errors:
        raise BusinessRuleError(errors)
    return insert_forecast(
        db,
        ctx,
        title=data.title,
        description=data.description,
        type=data.type,
        data_type=data.data_type,
        due_date=data.due_date,
        data_release_date=data.data_release_date,
        category_id=data.category_id,
        options=data.options,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_forecast(db: Session, ctx: RequestContext, forecast_id: int) -> Forecast:
    forecast = db.get(Forecast, forecast_id)
    if forecast is None or forecast.organization_id != ctx.organization_id:
        raise NotFoundError("Forecast not found")
    return forecast


def list_forecasts(db: Session, organization_id: int, status: Optional[str] = None) -> List[Forecast]:
    """``status``: ``open`` (due in future), ``closed`` (past due, no actual) or ``resolved``."""
    stmt = select(Forecast).where(Forecast.organization_id == organization_id)
    now = utcnow()
    if status == "open":
        stmt = stmt.where(Forecast.due_date > now)
    elif status == "closed":
        stmt = stmt.where(Forecast.due_date <= now, Forecast.actual_value.is_(None))
    elif status == "resolved":
        stmt = stmt.where(Forecast.actual_value.is_not(None))
    return db.execute(stmt.order_by(Forecast.due_date.asc(), Forecast.id.asc())).scalars().all()


def forecast_out(forecast: Forecast) -> Dict[str, Any]:
    data = ForecastOut.model_validate(forecast).model_dump()
    data["is_open"] = is_open(forecast)
    return data
