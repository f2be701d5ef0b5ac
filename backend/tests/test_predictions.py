from __future__ import annotations

from datetime import timedelta

import pytest

from foresight.core.security import RequestContext
from foresight.errors import BusinessRuleError, PermissionDeniedError
from foresight.models import DataType, ForecastType, Group, GroupMember, Prediction
from foresight.schemas.predictions import CreatePredictionIn, UpdatePredictionIn
from foresight.services import predictions as svc

from _helpers import auth_headers, make_forecast


def _ctx(user):
    return RequestContext.for_user(user)


def _submit(db, user, forecast, value="true", group=None, **extra):
    data = CreatePredictionIn(
        forecast_id=forecast.id, value=value, group_id=group.id if group else None, **extra
    )
    return svc.create_prediction(db, _ctx(user), data)


def test_individual_prediction_created(db, colleague, binary_forecast):
    p = _submit(db, colleague, binary_forecast, value=" TRUE ", confidence=70)
    assert p.value == "true"
    assert p.group_id is None
    assert p.confidence == 70


def test_second_individual_prediction_rejected(db, colleague, binary_forecast):
    _submit(db, colleague, binary_forecast)
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, binary_forecast, value="false")
    assert exc.value.errors["_form"] == [svc.MSG_INDIVIDUAL_EXISTS]


def test_closed_forecast_rejects_submission(db, org, category, colleague):
    closed = make_forecast(db, org, category, title="Closed", due_in=timedelta(days=-1))
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, closed)
    assert svc.MSG_CLOSED_SUBMIT in exc.value.errors["_form"]


def test_missing_forecast_returns_immediately(db, colleague):
    data = CreatePredictionIn(forecast_id=4242, value="maybe")
    errors = svc.validate_prediction_creation(db, _ctx(colleague), data)
    assert errors == {"_form": ["Forecast not found"]}


def test_value_must_match_forecast_type(db, org, category, colleague, binary_forecast):
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, binary_forecast, value="yes")
    assert exc.value.errors["value"] == ['Value must be "true" or "false"']

    numeric = make_forecast(
        db, org, category, title="CPI", type=ForecastType.CONTINUOUS, data_type=DataType.PERCENT
    )
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, numeric, value="NaN")
    assert exc.value.errors["value"] == ["Value must be a number"]
    assert _submit(db, colleague, numeric, value="3.50").value == "3.5"

    choice = make_forecast(
        db, org, category, title="Winner", type=ForecastType.CATEGORICAL, options=["A", "B"]
    )
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, choice, value="C")
    assert exc.value.errors["value"] == ["Selected option is not valid for this forecast"]


def test_confidence_bounds():
    with pytest.raises(ValueError):
        CreatePredictionIn(forecast_id=1, value="true", confidence=101)


def test_group_prediction_requires_membership(db, colleague, team, binary_forecast):
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, binary_forecast, group=team)
    assert svc.MSG_NOT_MEMBER in exc.value.errors["_form"]


def test_group_prediction_then_member_individual_blocked(db, member, team, binary_forecast):
    p = _submit(db, member, binary_forecast, group=team)
    assert p.group_id == team.id

    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, member, binary_forecast)
    assert svc.MSG_OWN_GROUP_EXISTS in exc.value.errors["_form"]


def test_second_group_prediction_blocked(db, member, colleague, team, binary_forecast):
    db.add(GroupMember(group_id=team.id, user_id=colleague.id))
    db.commit()
    _submit(db, member, binary_forecast, group=team)
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, binary_forecast, group=team)
    assert svc.MSG_GROUP_EXISTS in exc.value.errors["_form"]


def test_individual_first_blocks_group_prediction(db, member, team, binary_forecast):
    _submit(db, member, binary_forecast)
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, member, binary_forecast, group=team)
    assert svc.MSG_INDIVIDUAL_EXISTS in exc.value.errors["_form"]


def test_other_members_individual_blocks_group_prediction(db, member, colleague, team, binary_forecast):
    db.add(GroupMember(group_id=team.id, user_id=colleague.id))
    db.commit()
    _submit(db, colleague, binary_forecast)
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, member, binary_forecast, group=team)
    assert exc.value.errors["_form"] == [svc.MSG_MEMBER_INDIVIDUAL_EXISTS]


def test_group_of_other_org_rejected(db, member, stranger, other_org, binary_forecast):
    foreign = Group(name="Foreign", organization_id=other_org.id)
    db.add(foreign)
    db.commit()
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, member, binary_forecast, group=foreign)
    assert svc.MSG_GROUP_OTHER_ORG in exc.value.errors["_form"]


def test_unique_constraint_backs_up_validation(db, colleague, binary_forecast, monkeypatch):
    _submit(db, colleague, binary_forecast)
    # Simulate a racing request that passed validation before the first insert landed
    monkeypatch.setattr(svc, "validate_prediction_creation", lambda *a, **k: {})
    with pytest.raises(BusinessRuleError) as exc:
        _submit(db, colleague, binary_forecast, value="false")
    assert exc.value.errors["_form"] == [svc.MSG_INDIVIDUAL_EXISTS]
    assert db.query(Prediction).count() == 1


def test_update_by_submitter_keeps_unsent_fields(db, colleague, binary_forecast):
    p = _submit(db, colleague, binary_forecast, confidence=60, reasoning="gut")
    updated = svc.update_prediction(db, _ctx(colleague), p.id, UpdatePredictionIn(value="False"))
    assert updated.value == "false"
    assert updated.confidence == 60
    assert updated.reasoning == "gut"


def test_update_by_group_member(db, member, colleague, team, binary_forecast):
    p = _submit(db, member, binary_forecast, group=team)
    db.add(GroupMember(group_id=team.id, user_id=colleague.id))
    db.commit()
    updated = svc.update_prediction(db, _ctx(colleague), p.id, UpdatePredictionIn(value="false"))
    assert updated.value == "false"


def test_update_by_other_user_forbidden(db, member, colleague, binary_forecast):
    p = _submit(db, member, binary_forecast)
    with pytest.raises(PermissionDeniedError):
        svc.update_prediction(db, _ctx(colleague), p.id, UpdatePredictionIn(value="false"))


def test_update_after_close_rejected(db, org, category, colleague):
    forecast = make_forecast(db, org, category, title="Soon", due_in=timedelta(days=1))
    p = _submit(db, colleague, forecast)
    forecast.due_date = forecast.due_date - timedelta(days=3)
    db.commit()
    with pytest.raises(BusinessRuleError) as exc:
        svc.update_prediction(db, _ctx(colleague), p.id, UpdatePredictionIn(value="false"))
    assert exc.value.errors["_form"] == [svc.MSG_CLOSED_UPDATE]


def test_ranking_orders_by_confidence_then_time(db, admin, member, colleague, binary_forecast):
    _submit(db, member, binary_forecast, confidence=40)
    _submit(db, colleague, binary_forecast, confidence=90)
    _submit(db, admin, binary_forecast)
    ranked = svc.forecast_ranking(db, binary_forecast.id)
    assert [p.user_id for p in ranked] == [colleague.id, member.id, admin.id]


# ---- HTTP ----

def test_submit_and_edit_over_http(client, colleague, binary_forecast):
    h = auth_headers(colleague)
    r = client.post(
        "/api/predictions",
        json={"forecast_id": binary_forecast.id, "value": "true", "confidence": 55},
        headers=h,
    )
    assert r.status_code == 201, r.text
    pid = r.json()["data"]["id"]
    assert r.json()["data"]["user_name"] == colleague.name

    r = client.patch(f"/api/predictions/{pid}", json={"value": "false"}, headers=h)
    assert r.status_code == 200
    assert r.json()["data"]["value"] == "false"

    mine = client.get("/api/predictions/mine", headers=h).json()["data"]
    assert [p["id"] for p in mine] == [pid]

    listed = client.get(f"/api/forecasts/{binary_forecast.id}/predictions", headers=h).json()["data"]
    assert [p["id"] for p in listed] == [pid]


def test_duplicate_submission_over_http(client, colleague, binary_forecast):
    h = auth_headers(colleague)
    payload = {"forecast_id": binary_forecast.id, "value": "true"}
    assert client.post("/api/predictions", json=payload, headers=h).status_code == 201
    r = client.post("/api/predictions", json=payload, headers=h)
    assert r.status_code == 400
    assert r.json() == {
        "success": False,
        "errors": {"_form": [svc.MSG_INDIVIDUAL_EXISTS]},
        "data": None,
    }


def test_schema_errors_use_action_shape(client, colleague, binary_forecast):
    r = client.post(
        "/api/predictions",
        json={"forecast_id": binary_forecast.id, "value": "true", "confidence": 150},
        headers=auth_headers(colleague),
    )
    assert r.status_code == 400
    assert "confidence" in r.json()["errors"]


def test_missing_body_is_a_validation_error(client, colleague):
    r = client.post("/api/predictions", headers=auth_headers(colleague))
    assert r.status_code == 400
    assert set(r.json()["errors"]) >= {"forecast_id", "value"}


def test_my_metrics_list_scored_continuous_errors(client, db, org, category, colleague):
    numeric = make_forecast(
        db, org, category, title="GDP", type=ForecastType.CONTINUOUS,
        data_type=DataType.PERCENT, due_in=timedelta(days=-2),
    )
    db.add(Prediction(
        forecast_id=numeric.id, user_id=colleague.id, value="2.2", absolute_actual_error_pct=0.1
    ))
    db.commit()
    r = client.get("/api/predictions/mine/metrics?limit=5", headers=auth_headers(colleague))
    assert r.status_code == 200
    rows = r.json()["data"]
    assert [row["absolute_actual_error_pct"] for row in rows] == [pytest.approx(0.1)]
