from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_org_admin, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import action_error_from, action_ok, meta_now, ok, validate_payload
from foresight.schemas.forecasts import CategoryOut, CreateCategoryIn
from foresight.services import categories as svc

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("")
def list_categories(
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    rows = svc.list_categories(db, ctx.organization_id)
    return ok(
        data=[CategoryOut.model_validate(c).model_dump() for c in rows],
        meta=meta_now(organization_id=ctx.organization_id),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(CreateCategoryIn, payload)
        category = svc.create_category(db, ctx.organization_id, data)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(CategoryOut.model_validate(category).model_dump(), status_code=status.HTTP_201_CREATED)
