# foresight/routers/organization.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_org_admin, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import (
    action_error_from,
    action_ok,
    fail_from,
    meta_now,
    ok,
    validate_payload,
)
from foresight.schemas.organizations import ApiKeyIn, TokenLimitIn, UpdateOrganizationIn
from foresight.services import organizations as svc

router = APIRouter(prefix="/api/organization", tags=["organization"])


@router.get("")
def read_organization(
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        data = svc.organization_out(db, ctx.organization_id)
    except ForesightError as exc:
        return fail_from(exc)
    return ok(data=data, meta=meta_now(organization_id=ctx.organization_id))


@router.patch("")
def update_organization(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(UpdateOrganizationIn, payload)
        svc.update_organization(db, ctx.organization_id, data)
        out = svc.organization_out(db, ctx.organization_id)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(out)


@router.put("/api-key")
def set_api_key(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    """Store the organization's provider key; the key itself is never echoed back."""
    try:
        data = validate_payload(ApiKeyIn, payload)
        svc.update_api_key(db, ctx.organization_id, data.api_key)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.get_ai_usage(db, ctx.organization_id))


@router.put("/token-limit")
def set_token_limit(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(TokenLimitIn, payload)
        svc.update_ai_token_limit(db, ctx.organization_id, data.token_limit)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.get_ai_usage(db, ctx.organization_id))
