"""Read-only leaderboard projections over scored predictions.

Rows are pulled once per request with the SQL-expressible filters applied,
then trimmed (``recent_count``), grouped and ranked in pandas.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

import numpy as np
import pandas as pd
import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from foresight.errors import BusinessRuleError
from foresight.models import Category, Forecast, Group, GroupMember, Prediction, User
from foresight.schemas.common import validate_payload
from foresight.schemas.leaderboard import LeaderboardEntry, LeaderboardFilters, LeaderboardView
from foresight.utils.dates import as_utc

logger = structlog.get_logger(__name__)

COLUMNS = [
    "id",
    "user_id",
    "group_id",
    "forecast_id",
    "category_id",
    "is_correct",
    "brier_score",
    "absolute_actual_error_pct",
    "equity_investment",
    "debt_financing",
    "net_profit",
    "interest_on_debt",
    "roi",
    "estimated_time",
    "scored_at",
    "due_date",
    "forecast_title",
    "category_name",
    "user_name",
    "user_email",
    "group_name",
]

SORTABLE_FIELDS = frozenset(LeaderboardEntry.model_fields) - {"rank"}


def _native(v: Any):
    """Convert pandas/numpy values into JSON-safe Python types."""
    if isinstance(v, np.integer):
        return int(v)
    if isinstance(v, np.floating):
        return None if np.isnan(v) else float(v)
    if isinstance(v, float) and np.isnan(v):
        return None
    if v is pd.NaT:
        return None
    return v


def _load_frame(
    db: Session,
    organization_id: int,
    filters: LeaderboardFilters,
    *,
    completed_only: bool,
) -> pd.DataFrame:
    stmt = (
        select(
            Prediction.id,
            Prediction.user_id,
            Prediction.group_id,
            Prediction.forecast_id,
            Forecast.category_id,
            Prediction.is_correct,
            Prediction.brier_score,
            Prediction.absolute_actual_error_pct,
            Prediction.equity_investment,
            Prediction.debt_financing,
            Prediction.net_profit,
            Prediction.interest_on_debt,
            Prediction.roi,
            Prediction.estimated_time,
            Prediction.scored_at,
            Forecast.due_date,
            Forecast.title.label("forecast_title"),
            Category.name.label("category_name"),
            User.name.label("user_name"),
            User.email.label("user_email"),
            Group.name.label("group_name"),
        )
        .join(Forecast, Forecast.id == Prediction.forecast_id)
        .join(Category, Category.id == Forecast.category_id)
        .join(User, User.id == Prediction.user_id)
        .outerjoin(Group, Group.id == Prediction.group_id)
        .where(Forecast.organization_id == organization_id)
    )
    if completed_only:
        stmt = stmt.where(Prediction.scored_at.is_not(None))
    if filters.forecast_ids:
        stmt = stmt.where(Prediction.forecast_id.in_(filters.forecast_ids))
    if filters.category_ids:
        stmt = stmt.where(Forecast.category_id.in_(filters.category_ids))
    if filters.types:
        stmt = stmt.where(Forecast.type.in_(filters.types))
    if filters.due_from:
        stmt = stmt.where(Forecast.due_date >= as_utc(filters.due_from))
    if filters.due_to:
        stmt = stmt.where(Forecast.due_date <= as_utc(filters.due_to))

    rows = db.execute(stmt).mappings().all()
    df = pd.DataFrame([dict(r) for r in rows], columns=COLUMNS)

    df["completed"] = df["scored_at"].notna().astype(float)
    df["correct"] = df["is_correct"].map({True: 1.0, False: 0.0}).astype(float)
    for col in ("brier_score", "absolute_actual_error_pct", "net_profit", "interest_on_debt", "roi"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["equity"] = pd.to_numeric(df["equity_investment"], errors="coerce").fillna(0.0)
    df["debt"] = pd.to_numeric(df["debt_financing"], errors="coerce").fillna(0.0)
    df["minutes"] = pd.to_numeric(df["estimated_time"], errors="coerce")
    # Individual and group attributions are distinct participants
    df["participant"] = np.where(
        df["group_id"].notna(),
        "g" + df["group_id"].astype("Int64").astype(str),
        "u" + df["user_id"].astype(str),
    )
    return df


def _trim_recent(df: pd.DataFrame, recent_count: int) -> pd.DataFrame:
    """Keep each participant's latest ``recent_count`` predictions by forecast due date."""
    ordered = df.sort_values(["due_date", "id"], ascending=[False, False], kind="mergesort")
    return ordered.groupby("participant", sort=False).head(recent_count)


def _aggregate(df: pd.DataFrame, key: str, label: pd.Series) -> pd.DataFrame:
    g = df.groupby(key, sort=False)
    out = pd.DataFrame({
        "label": label.groupby(df[key], sort=False).first(),
        "completed_predictions": g["completed"].sum(),
        "correct_predictions": g["correct"].sum(),
        "avg_brier_score": g["brier_score"].mean(),
        "avg_abs_actual_error_pct": g["absolute_actual_error_pct"].mean(),
        "median_abs_actual_error_pct": g["absolute_actual_error_pct"].median(),
        "total_equity": g["equity"].sum(),
        "total_debt": g["debt"].sum(),
        "total_net_profit": g["net_profit"].sum(),
        "total_interest": g["interest_on_debt"].sum(),
        "avg_roi": g["roi"].mean(),
        "median_roi": g["roi"].median(),
        "total_forecast_time": g["minutes"].sum(),
        "avg_forecast_time": g["minutes"].mean(),
    })
    out["total_investment"] = out["total_equity"] + out["total_debt"]
    out["accuracy_rate"] = (out["correct_predictions"] / out["completed_predictions"]).where(
        out["completed_predictions"] > 0
    )
    net_after_interest = out["total_net_profit"] - out["total_interest"]
    out["roi_real"] = (net_after_interest / out["total_investment"]).where(out["total_investment"] > 0)
    out["profit_per_hour"] = (net_after_interest / (out["total_forecast_time"] / 60.0)).where(
        out["total_forecast_time"] > 0
    )
    out.index.name = "key"
    return out.reset_index()


def _member_counts(db: Session, group_ids: List[int]) -> Dict[int, int]:
    if not group_ids:
        return {}
    return dict(
        db.execute(
            select(GroupMember.group_id, func.count(GroupMember.id))
            .where(GroupMember.group_id.in_(group_ids))
            .group_by(GroupMember.group_id)
        ).all()
    )


def compute_leaderboard(
    db: Session,
    organization_id: int,
    view: LeaderboardView,
    filters: LeaderboardFilters,
) -> List[Dict[str, Any]]:
    """Ranked entries for one view; raises BusinessRuleError for an unknown sort field."""
    if filters.sort_by not in SORTABLE_FIELDS:
        raise BusinessRuleError({"sort_by": [f"Unknown sort field: {filters.sort_by}"]})

    view = LeaderboardView(view)
    df = _load_frame(db, organization_id, filters, completed_only=view != LeaderboardView.FORECAST)

    if view == LeaderboardView.USER:
        df = df[df["group_id"].isna()]
    elif view == LeaderboardView.GROUP:
        df = df[df["group_id"].notna()].copy()
        df["group_id"] = df["group_id"].astype(int)

    if filters.recent_count and not df.empty:
        df = _trim_recent(df, filters.recent_count)

    if df.empty:
        return []

    if view == LeaderboardView.USER:
        out = _aggregate(df, "user_id", df["user_name"].fillna(df["user_email"]))
    elif view == LeaderboardView.GROUP:
        out = _aggregate(df, "group_id", df["group_name"])
        counts = _member_counts(db, [int(k) for k in out["key"]])
        out["member_count"] = out["key"].map(lambda k: counts.get(int(k), 0))
    elif view == LeaderboardView.CATEGORY:
        out = _aggregate(df, "category_id", df["category_name"])
        g = df.groupby("category_id", sort=False)
        out["forecast_count"] = out["key"].map(g["forecast_id"].nunique())
        out["participant_count"] = out["key"].map(g["participant"].nunique())
    else:
        out = _aggregate(df, "forecast_id", df["forecast_title"])
        g = df.groupby("forecast_id", sort=False)
        is_group = df["group_id"].notna()
        out["participant_count"] = out["key"].map(g["participant"].nunique())
        out["individual_participants"] = out["key"].map(
            df[~is_group].groupby("forecast_id")["participant"].nunique()
        ).fillna(0)
        out["group_participants"] = out["key"].map(
            df[is_group].groupby("forecast_id")["participant"].nunique()
        ).fillna(0)

    if filters.min_forecasts:
        out = out[out["completed_predictions"] >= filters.min_forecasts]

    if filters.sort_by not in out.columns:
        # view-specific column requested on another view
        out[filters.sort_by] = np.nan
    keys = [filters.sort_by] if filters.sort_by == "label" else [filters.sort_by, "label"]
    out = out.sort_values(
        keys,
        ascending=[filters.sort_dir == "asc", True][: len(keys)],
        na_position="last",
        kind="mergesort",
    )
    out.insert(0, "rank", range(1, len(out) + 1))

    entries = []
    for record in out.to_dict("records"):
        clean = {k: _native(v) for k, v in record.items() if k in LeaderboardEntry.model_fields}
        entries.append(LeaderboardEntry.model_validate(clean).model_dump())

    logger.info(
        "leaderboard.computed",
        organization_id=organization_id,
        view=view.value,
        entries=len(entries),
        sort_by=filters.sort_by,
    )
    return entries


def to_csv(entries: List[Dict[str, Any]]) -> str:
    """CSV with one column per entry field, in schema order."""
    return pd.DataFrame(entries, columns=list(LeaderboardEntry.model_fields)).to_csv(index=False)


def parse_filters(
    *,
    forecast_ids: List[int] | None = None,
    category_ids: List[int] | None = None,
    types: List[str] | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    recent_count: int | None = None,
    min_forecasts: int | None = None,
    sort_by: str = "accuracy_rate",
    sort_dir: str = "desc",
) -> LeaderboardFilters:
    return validate_payload(
        LeaderboardFilters,
        {
            "forecast_ids": forecast_ids or [],
            "category_ids": category_ids or [],
            "types": types or [],
            "due_from": due_from,
            "due_to": due_to,
            "recent_count": recent_count,
            "min_forecasts": min_forecasts,
            "sort_by": sort_by,
            "sort_dir": sort_dir,
        },
    )
