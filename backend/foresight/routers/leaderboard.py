# foresight/routers/leaderboard.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import fail_from, meta_now, ok
from foresight.schemas.leaderboard import LeaderboardFilters, LeaderboardView
from foresight.services.leaderboard import compute_leaderboard, parse_filters, to_csv

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


def leaderboard_filters(
    forecast_id: Optional[List[int]] = Query(None, description="Restrict to these forecasts"),
    category_id: Optional[List[int]] = Query(None, description="Restrict to these categories"),
    type: Optional[List[str]] = Query(None, description="Forecast types (BINARY, CONTINUOUS, CATEGORICAL)"),
    due_from: Optional[datetime] = Query(None),
    due_to: Optional[datetime] = Query(None),
    recent_count: Optional[int] = Query(None, description="Latest N predictions per participant"),
    min_forecasts: Optional[int] = Query(None),
    sort_by: str = Query("accuracy_rate"),
    sort_dir: Literal["asc", "desc"] = Query("desc"),
) -> dict:
    return {
        "forecast_ids": forecast_id,
        "category_ids": category_id,
        "types": type,
        "due_from": due_from,
        "due_to": due_to,
        "recent_count": recent_count,
        "min_forecasts": min_forecasts,
        "sort_by": sort_by,
        "sort_dir": sort_dir,
    }


def _filters_meta(filters: LeaderboardFilters) -> dict:
    return filters.model_dump(mode="json", exclude_defaults=True)


@router.get("/{view}")
def read_leaderboard(
    view: LeaderboardView,
    params: dict = Depends(leaderboard_filters),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        filters = parse_filters(**params)
        entries = compute_leaderboard(db, ctx.organization_id, view, filters)
    except ForesightError as exc:
        return fail_from(exc)
    return ok(
        data=entries,
        meta=meta_now(organization_id=ctx.organization_id, view=view.value, **_filters_meta(filters)),
    )


@router.get("/{view}/export.csv")
def export_leaderboard(
    view: LeaderboardView,
    params: dict = Depends(leaderboard_filters),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        filters = parse_filters(**params)
        entries = compute_leaderboard(db, ctx.organization_id, view, filters)
    except ForesightError as exc:
        return fail_from(exc)
    filename = f"leaderboard_{view.value}.csv"
    return Response(
        content=to_csv(entries),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
