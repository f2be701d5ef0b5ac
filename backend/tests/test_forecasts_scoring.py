from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from foresight.core.security import RequestContext
from foresight.errors import BusinessRuleError, NotFoundError
from foresight.models import Category, DataType, ForecastType, Prediction
from foresight.schemas.forecasts import CreateCategoryIn
from foresight.services import categories as category_svc
from foresight.services import forecasts as svc
from foresight.services.scoring import record_actual_value, score_prediction

from _helpers import auth_headers, make_forecast, unwrap


def _ctx(user):
    return RequestContext.for_user(user)


def _future(days):
    return datetime.now(timezone.utc) + timedelta(days=days)


def _rules(db, org, category, **overrides):
    kwargs = dict(
        title="GDP above 2%?",
        type=ForecastType.BINARY,
        data_type=None,
        due_date=_future(5),
        data_release_date=_future(6),
        category_id=category.id,
        options=None,
    )
    kwargs.update(overrides)
    return svc.validate_forecast_rules(db, org.id, **kwargs)


# ---- creation rules ----

def test_valid_binary_forecast_has_no_errors(db, org, category):
    assert _rules(db, org, category) == {}


def test_rules_report_every_problem_by_field(db, org, category, binary_forecast):
    errors = _rules(
        db,
        org,
        category,
        title=binary_forecast.title,
        due_date=_future(-1),
        data_release_date=_future(-2),
        type=ForecastType.CONTINUOUS,
    )
    assert set(errors) == {"title", "due_date", "data_release_date", "data_type"}


def test_category_must_belong_to_org(db, org, other_org):
    foreign = Category(name="Elsewhere", organization_id=other_org.id)
    db.add(foreign)
    db.commit()
    errors = _rules(db, org, foreign)
    assert errors["category_id"] == ["Category not found in your organization"]


def test_type_specific_fields(db, org, category):
    assert "data_type" in _rules(db, org, category, data_type=DataType.PERCENT)
    assert "options" in _rules(db, org, category, options=["a", "b"])
    errors = _rules(db, org, category, type=ForecastType.CATEGORICAL, options=["a", " a "])
    assert errors["options"] == ["CATEGORICAL forecasts require at least two distinct options"]
    assert _rules(db, org, category, type=ForecastType.CATEGORICAL, options=["a", "b"]) == {}


def test_normalize_value_by_type(db, org, category, binary_forecast):
    numeric = make_forecast(
        db, org, category, title="Rate", type=ForecastType.CONTINUOUS, data_type=DataType.DECIMAL
    )
    assert svc.normalize_value(binary_forecast, " False ") == "false"
    assert svc.normalize_value(numeric, "1,250.0") == "1250"
    assert svc.normalize_value(numeric, "0.25") == "0.25"
    assert svc.normalize_value(numeric, "inf") is None


def test_admin_creates_forecast_over_http(client, admin, member, category):
    payload = {
        "title": "Quarterly revenue",
        "type": "CONTINUOUS",
        "data_type": "CURRENCY",
        "due_date": _future(3).isoformat(),
        "data_release_date": _future(10).isoformat(),
        "category_id": category.id,
    }
    assert client.post("/api/forecasts", json=payload, headers=auth_headers(member)).status_code == 403

    r = client.post("/api/forecasts", json=payload, headers=auth_headers(admin))
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["title"] == "Quarterly revenue"
    assert data["is_open"] is True

    r = client.post("/api/forecasts", json=payload, headers=auth_headers(admin))
    assert r.status_code == 400
    assert "title" in r.json()["errors"]


def test_create_forecast_missing_data_type_over_http(client, admin, category):
    payload = {
        "title": "Unemployment",
        "type": "CONTINUOUS",
        "due_date": _future(3).isoformat(),
        "data_release_date": _future(4).isoformat(),
        "category_id": category.id,
    }
    r = client.post("/api/forecasts", json=payload, headers=auth_headers(admin))
    assert r.status_code == 400
    assert list(r.json()["errors"]) == ["data_type"]


def test_forecast_detail_includes_my_prediction(client, db, member, binary_forecast, stranger):
    db.add(Prediction(forecast_id=binary_forecast.id, user_id=member.id, value="true"))
    db.commit()
    data = unwrap(client.get(f"/api/forecasts/{binary_forecast.id}", headers=auth_headers(member)).json())
    assert data["my_prediction"]["value"] == "true"

    r = client.get(f"/api/forecasts/{binary_forecast.id}", headers=auth_headers(stranger))
    assert r.status_code == 404


def test_list_forecasts_by_status(client, db, org, category, member, binary_forecast):
    closed = make_forecast(db, org, category, title="Yesterday", due_in=timedelta(days=-1))
    h = auth_headers(member)
    open_ids = [f["id"] for f in unwrap(client.get("/api/forecasts?status=open", headers=h).json())]
    closed_ids = [f["id"] for f in unwrap(client.get("/api/forecasts?status=closed", headers=h).json())]
    assert open_ids == [binary_forecast.id]
    assert closed_ids == [closed.id]


def test_get_forecast_other_org_not_found(db, stranger, binary_forecast):
    with pytest.raises(NotFoundError):
        svc.get_forecast(db, _ctx(stranger), binary_forecast.id)


# ---- scoring ----

def test_binary_score_with_confidence_and_investment():
    right = score_prediction(ForecastType.BINARY, "true", "true", confidence=80, equity=50)
    assert right.is_correct is True
    assert right.brier_score == pytest.approx(0.04)
    assert right.net_profit == pytest.approx(50)
    assert right.roi == pytest.approx(1.0)

    wrong = score_prediction(ForecastType.BINARY, "false", "true", confidence=80, equity=50)
    assert wrong.is_correct is False
    assert wrong.brier_score == pytest.approx(0.64)
    assert wrong.net_profit == pytest.approx(-50)


def test_categorical_without_confidence_has_no_brier():
    score = score_prediction(ForecastType.CATEGORICAL, "Blue", "blue")
    assert score.is_correct is True
    assert score.brier_score is None
    assert score.net_profit is None


def test_continuous_errors_and_debt_interest():
    score = score_prediction(
        ForecastType.CONTINUOUS, "110", "100", equity=100, debt=100, interest_rate=0.05
    )
    assert score.actual_error == pytest.approx(10)
    assert score.absolute_actual_error_pct == pytest.approx(0.1)
    assert score.absolute_forecast_error_pct == pytest.approx(10 / 110)
    assert score.is_correct is False
    assert score.net_profit == pytest.approx(160)
    assert score.interest_on_debt == pytest.approx(5)
    assert score.roi == pytest.approx(155 / 200)


def test_continuous_tolerance_and_zero_actual():
    assert score_prediction(ForecastType.CONTINUOUS, "101", "100", tolerance=0.02).is_correct is True

    exact = score_prediction(ForecastType.CONTINUOUS, "0", "0")
    assert exact.is_correct is True
    assert exact.absolute_actual_error_pct is None

    miss = score_prediction(ForecastType.CONTINUOUS, "5", "0", equity=10)
    assert miss.is_correct is False
    assert miss.net_profit == pytest.approx(-10)


def test_record_actual_rejects_open_forecast(db, admin, binary_forecast):
    with pytest.raises(BusinessRuleError) as exc:
        record_actual_value(db, _ctx(admin), binary_forecast.id, "true")
    assert "actual_value" in exc.value.errors


def test_record_actual_rejects_bad_value(db, org, category, admin):
    closed = make_forecast(db, org, category, title="Done", due_in=timedelta(days=-1))
    with pytest.raises(BusinessRuleError) as exc:
        record_actual_value(db, _ctx(admin), closed.id, "perhaps")
    assert exc.value.errors["actual_value"] == ['Value must be "true" or "false"']


def test_record_actual_scores_predictions_over_http(client, db, org, category, admin, member, colleague):
    closed = make_forecast(db, org, category, title="Done", due_in=timedelta(days=-1))
    db.add_all([
        Prediction(forecast_id=closed.id, user_id=member.id, value="true", confidence=90),
        Prediction(forecast_id=closed.id, user_id=colleague.id, value="false", equity_investment=20),
    ])
    db.commit()

    assert client.post(
        f"/api/forecasts/{closed.id}/actual", json={"actual_value": "true"}, headers=auth_headers(member)
    ).status_code == 403

    r = client.post(
        f"/api/forecasts/{closed.id}/actual", json={"actual_value": "TRUE"}, headers=auth_headers(admin)
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"] == {
        "forecast_id": closed.id,
        "actual_value": "true",
        "scored": 2,
        "correct": 1,
    }

    db.expire_all()
    by_user = {p.user_id: p for p in db.query(Prediction).all()}
    assert by_user[member.id].is_correct is True
    assert by_user[member.id].brier_score == pytest.approx(0.01)
    assert by_user[colleague.id].net_profit == pytest.approx(-20)
    assert by_user[colleague.id].scored_at is not None


# ---- categories ----

def test_category_names_unique_case_insensitively(db, org, category):
    with pytest.raises(BusinessRuleError) as exc:
        category_svc.create_category(db, org.id, CreateCategoryIn(name="  macro "))
    assert "name" in exc.value.errors


def test_find_or_create_category(db, org, category):
    found, created = category_svc.find_or_create_category(db, org.id, " MACRO ")
    assert (found.id, created) == (category.id, False)

    fresh, created = category_svc.find_or_create_category(db, org.id, "Crypto")
    assert created is True
    assert fresh.organization_id == org.id


def test_categories_over_http(client, admin, member, category):
    r = client.post("/api/categories", json={"name": "Equities"}, headers=auth_headers(admin))
    assert r.status_code == 201
    names = [c["name"] for c in unwrap(client.get("/api/categories", headers=auth_headers(member)).json())]
    assert names == ["Equities", "Macro"]


def test_blank_title_and_category_name_rejected_over_http(client, admin, category):
    payload = {
        "title": "   ",
        "type": "BINARY",
        "due_date": _future(3).isoformat(),
        "data_release_date": _future(4).isoformat(),
        "category_id": category.id,
    }
    r = client.post("/api/forecasts", json=payload, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["errors"] == {"title": ["Title is required"]}

    r = client.post("/api/categories", json={"name": "  "}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["errors"] == {"name": ["Category name is required"]}
