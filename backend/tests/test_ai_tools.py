from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from foresight.core.security import RequestContext
from foresight.models import AIConversationStatus, Category, Forecast
from foresight.services import ai_forecast_tools as tools
from foresight.services.ai_conversations import create_conversation, get_conversation


def _ctx(user):
    return RequestContext.for_user(user)


def _args(**overrides):
    now = datetime.now(timezone.utc)
    args = {
        "title": "Will BTC close above 100k?",
        "description": "Daily close on the due date",
        "type": "BINARY",
        "dueDate": (now + timedelta(days=10)).isoformat(),
        "dataReleaseDate": (now + timedelta(days=11)).isoformat(),
        "categoryName": "Crypto",
    }
    args.update(overrides)
    return {k: v for k, v in args.items() if v is not None}


@pytest.fixture
def toolbox(db, member):
    conversation = create_conversation(db, _ctx(member), "Create a crypto forecast")
    return tools.ForecastToolbox(db, _ctx(member), conversation.id)


def _run(toolbox, name, arguments):
    return toolbox.execute(name, json.dumps(arguments))


def test_tool_definitions_expose_camel_case_parameters():
    defs = tools.tool_definitions()
    assert [d["function"]["name"] for d in defs] == [
        "findOrCreateCategory",
        "validateForecastDraft",
        "createForecast",
    ]
    draft_props = defs[1]["function"]["parameters"]["properties"]
    assert {"dueDate", "dataReleaseDate", "categoryName", "dataType"} <= set(draft_props)


def test_find_or_create_category(toolbox, db, category):
    existing = _run(toolbox, "findOrCreateCategory", {"name": "macro"})
    assert existing == {"id": category.id, "name": "Macro", "message": 'Using existing category: "Macro"'}

    created = _run(toolbox, "findOrCreateCategory", {"name": "Movies"})
    assert created["message"] == 'Created new category: "Movies"'
    assert db.query(Category).count() == 2


def test_validate_accepts_good_binary_draft(toolbox):
    result = _run(toolbox, "validateForecastDraft", _args())
    assert result["valid"] is True
    assert result["message"] == "Forecast validated successfully"
    assert isinstance(result["categoryId"], int)


def test_validate_rejects_categorical(toolbox, db):
    result = _run(toolbox, "validateForecastDraft", _args(type="CATEGORICAL", options=["a", "b"]))
    assert result == {
        "valid": False,
        "message": "Validation errors found",
        "errors": {"type": [tools.CATEGORICAL_UNSUPPORTED]},
    }
    assert db.query(Category).count() == 0


def test_validate_data_type_by_type(toolbox):
    continuous = _run(toolbox, "validateForecastDraft", _args(type="CONTINUOUS"))
    assert continuous["errors"] == {"dataType": [tools.CONTINUOUS_NEEDS_DATA_TYPE]}

    binary = _run(toolbox, "validateForecastDraft", _args(dataType="PERCENT"))
    assert binary["errors"] == {"dataType": [tools.BINARY_HAS_DATA_TYPE]}


def test_validate_reports_camel_case_rule_errors(toolbox):
    now = datetime.now(timezone.utc)
    result = _run(
        toolbox,
        "validateForecastDraft",
        _args(
            dueDate=(now - timedelta(days=1)).isoformat(),
            dataReleaseDate=(now - timedelta(days=2)).isoformat(),
        ),
    )
    assert result["valid"] is False
    assert set(result["errors"]) == {"dueDate", "dataReleaseDate"}


def test_create_forecast_completes_conversation(toolbox, db, member):
    result = _run(toolbox, "createForecast", _args(type="CONTINUOUS", dataType="CURRENCY"))
    assert result["success"] is True
    assert result["message"] == 'Forecast "Will BTC close above 100k?" created successfully!'
    assert toolbox.created_forecast_id == result["forecastId"]

    db.expire_all()
    forecast = db.get(Forecast, result["forecastId"])
    assert forecast.created_by_id == member.id
    assert forecast.organization_id == member.organization_id
    conversation = get_conversation(db, toolbox.conversation_id)
    assert conversation.status == AIConversationStatus.COMPLETED
    assert conversation.forecast_id == forecast.id


def test_create_forecast_duplicate_title_fails(toolbox, db):
    assert _run(toolbox, "createForecast", _args())["success"] is True
    again = _run(toolbox, "createForecast", _args())
    assert again["success"] is False
    assert again["message"] == f"Failed to create forecast: {tools.VALIDATION_FAILED}"
    assert "title" in again["errors"]


def test_bad_arguments_and_unknown_tool(toolbox):
    assert toolbox.execute("deleteEverything", "{}") == {
        "success": False,
        "message": "Unknown tool: deleteEverything",
    }
    assert toolbox.execute("findOrCreateCategory", "{not json")["message"] == (
        "Tool arguments were not valid JSON"
    )
    missing = toolbox.execute("validateForecastDraft", json.dumps({"title": "x"}))
    assert missing["success"] is False
    assert "dueDate" in missing["errors"]


def test_blank_names_rejected_before_anything_is_stored(toolbox, db):
    category = _run(toolbox, "findOrCreateCategory", {"name": "   "})
    assert category["success"] is False
    assert category["errors"] == {"name": ["Category name is required"]}

    created = _run(toolbox, "createForecast", _args(title="   "))
    assert created["success"] is False
    assert created["errors"] == {"title": ["Title is required"]}

    no_category = _run(toolbox, "createForecast", _args(categoryName=" \t "))
    assert no_category["errors"] == {"categoryName": ["Category name is required"]}

    assert db.query(Category).count() == 0
    assert db.query(Forecast).count() == 0
    assert toolbox.created_forecast_id is None


def test_names_are_trimmed(toolbox, db):
    result = _run(toolbox, "createForecast", _args(title="  Padded title  ", categoryName=" Crypto "))
    assert result["success"] is True
    db.expire_all()
    forecast = db.get(Forecast, result["forecastId"])
    assert forecast.title == "Padded title"
    assert forecast.category.name == "Crypto"
