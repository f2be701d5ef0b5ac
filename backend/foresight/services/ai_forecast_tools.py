"""The three operations the forecast assistant may call.

The model sees camelCase argument and error keys; everything is scoped to
the organization of the chatting user. Tool results are plain dicts that are
serialized back to the model as JSON.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext
from foresight.errors import BusinessRuleError, FieldErrors, FORM_KEY
from foresight.models.enums import ForecastType
from foresight.prompts import (
    CREATE_FORECAST_DESCRIPTION,
    FIND_OR_CREATE_CATEGORY_DESCRIPTION,
    VALIDATE_FORECAST_DRAFT_DESCRIPTION,
)
from foresight.schemas.common import validation_errors
from foresight.schemas.forecasts import CategoryNameIn, ForecastDraft
from foresight.services.ai_conversations import complete_conversation
from foresight.services.categories import find_or_create_category
from foresight.services.forecasts import insert_forecast, validate_forecast_rules

logger = structlog.get_logger(__name__)

FIND_OR_CREATE_CATEGORY = "findOrCreateCategory"
VALIDATE_FORECAST_DRAFT = "validateForecastDraft"
CREATE_FORECAST = "createForecast"

CATEGORICAL_UNSUPPORTED = (
    "CATEGORICAL forecasts are not supported by the AI agent. "
    "Please create a BINARY or CONTINUOUS forecast."
)
CONTINUOUS_NEEDS_DATA_TYPE = (
    "CONTINUOUS forecasts require a dataType (CURRENCY, PERCENT, INTEGER, NUMBER, or DECIMAL)"
)
BINARY_HAS_DATA_TYPE = "BINARY forecasts should not have a dataType"
VALIDATION_FAILED = "Validation failed. Please correct the errors and try again."


def _camel_errors(errors: FieldErrors) -> FieldErrors:
    return {(k if k == FORM_KEY else to_camel(k)): v for k, v in errors.items()}


def find_or_create_category_tool(db: Session, ctx: RequestContext, name: str) -> Dict[str, Any]:
    category, created = find_or_create_category(db, ctx.organization_id, name)
    return {"id": category.id, "name": category.name, "was_created": created}


def validate_forecast_draft(
    db: Session,
    ctx: RequestContext,
    draft: ForecastDraft,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """``{"valid": True, "category_id": ...}`` or ``{"valid": False, "errors": {...}}``."""
    if draft.type == ForecastType.CATEGORICAL:
        return {"valid": False, "errors": {"type": [CATEGORICAL_UNSUPPORTED]}}
    if draft.type == ForecastType.CONTINUOUS and draft.data_type is None:
        return {"valid": False, "errors": {"dataType": [CONTINUOUS_NEEDS_DATA_TYPE]}}
    if draft.type == ForecastType.BINARY and draft.data_type is not None:
        return {"valid": False, "errors": {"dataType": [BINARY_HAS_DATA_TYPE]}}

    category = find_or_create_category_tool(db, ctx, draft.category_name)

    errors = validate_forecast_rules(
        db,
        ctx.organization_id,
        title=draft.title,
        type=draft.type,
        data_type=draft.data_type,
        due_date=draft.due_date,
        data_release_date=draft.data_release_date,
        category_id=category["id"],
        options=draft.options,
        now=now,
    )
    if errors:
        return {"valid": False, "errors": _camel_errors(errors)}
    return {"valid": True, "category_id": category["id"]}


def create_forecast_from_draft(
    db: Session,
    ctx: RequestContext,
    conversation_id: int,
    draft: ForecastDraft,
) -> Dict[str, Any]:
    """Re-validate, persist, and close the originating conversation in one commit."""
    validation = validate_forecast_draft(db, ctx, draft)
    if not validation["valid"]:
        return {"success": False, "error": VALIDATION_FAILED, "errors": validation["errors"]}

    try:
        forecast = insert_forecast(
            db,
            ctx,
            title=draft.title,
            description=draft.description,
            type=draft.type,
            data_type=draft.data_type,
            due_date=draft.due_date,
            data_release_date=draft.data_release_date,
            category_id=validation["category_id"],
            options=draft.options,
            commit=False,
        )
    except BusinessRuleError as exc:
        return {"success": False, "error": VALIDATION_FAILED, "errors": _camel_errors(exc.errors)}

    complete_conversation(db, conversation_id, forecast.id, commit=False)
    db.commit()
    return {"success": True, "forecast_id": forecast.id, "title": forecast.title}


# ---------------------------------------------------------------------------
# Model-facing surface
# ---------------------------------------------------------------------------

def _function_tool(name: str, description: str, model) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": model.model_json_schema(by_alias=True),
        },
    }


def tool_definitions() -> List[Dict[str, Any]]:
    return [
        _function_tool(FIND_OR_CREATE_CATEGORY, FIND_OR_CREATE_CATEGORY_DESCRIPTION, CategoryNameIn),
        _function_tool(VALIDATE_FORECAST_DRAFT, VALIDATE_FORECAST_DRAFT_DESCRIPTION, ForecastDraft),
        _function_tool(CREATE_FORECAST, CREATE_FORECAST_DESCRIPTION, ForecastDraft),
    ]


class ForecastToolbox:
    """Dispatches model tool calls for one chat turn."""

    def __init__(self, db: Session, ctx: RequestContext, conversation_id: int) -> None:
        self.db = db
        self.ctx = ctx
        self.conversation_id = conversation_id
        self.created_forecast_id: Optional[int] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            FIND_OR_CREATE_CATEGORY: self._find_or_create_category,
            VALIDATE_FORECAST_DRAFT: self._validate_forecast_draft,
            CREATE_FORECAST: self._create_forecast,
        }

    def execute(self, name: str, raw_arguments: str) -> Dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            return {"success": False, "message": f"Unknown tool: {name}"}
        try:
            arguments = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError:
            return {"success": False, "message": "Tool arguments were not valid JSON"}
        try:
            result = handler(arguments)
        except ValidationError as exc:
            result = {"success": False, "message": "Invalid tool arguments", "errors": validation_errors(exc)}
        logger.info(
            "chat.tool_called",
            tool=name,
            conversation_id=self.conversation_id,
            ok=bool(result.get("success", result.get("valid", True))),
        )
        return result

    def _find_or_create_category(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        params = CategoryNameIn.model_validate(arguments)
        result = find_or_create_category_tool(self.db, self.ctx, params.name)
        verb = "Created new category" if result["was_created"] else "Using existing category"
        return {
            "id": result["id"],
            "name": result["name"],
            "message": f'{verb}: "{result["name"]}"',
        }

    def _validate_forecast_draft(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        draft = ForecastDraft.model_validate(arguments)
        result = validate_forecast_draft(self.db, self.ctx, draft)
        if result["valid"]:
            return {
                "valid": True,
                "message": "Forecast validated successfully",
                "categoryId": result["category_id"],
            }
        return {"valid": False, "message": "Validation errors found", "errors": result["errors"]}

    def _create_forecast(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        draft = ForecastDraft.model_validate(arguments)
        result = create_forecast_from_draft(self.db, self.ctx, self.conversation_id, draft)
        if result["success"]:
            self.created_forecast_id = result["forecast_id"]
            return {
                "success": True,
                "message": f'Forecast "{result["title"]}" created successfully!',
                "forecastId": result["forecast_id"],
            }
        return {
            "success": False,
            "message": f"Failed to create forecast: {result['error']}",
            "errors": result.get("errors"),
        }
