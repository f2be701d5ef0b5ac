# foresight/routers/groups.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status
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
from foresight.schemas.groups import AddGroupMemberIn, CreateGroupIn, UpdateGroupIn
from foresight.services import groups as svc

router = APIRouter(prefix="/api/groups", tags=["groups"])


def _user_row(user) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email}


# ---- reads (any organization member) ----

@router.get("")
def list_groups(
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    return ok(
        data=svc.list_organization_groups(db, ctx.organization_id),
        meta=meta_now(organization_id=ctx.organization_id),
    )


@router.get("/mine")
def my_group(
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    group = svc.get_user_group(db, ctx.user_id, ctx.organization_id)
    data = svc.group_detail(db, group) if group is not None else None
    return ok(data=data, meta=meta_now(organization_id=ctx.organization_id))


@router.get("/available-users")
def available_users(
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    users = svc.get_available_users(db, ctx.organization_id)
    return ok(
        data=[_user_row(u) for u in users],
        meta=meta_now(organization_id=ctx.organization_id),
    )


@router.get("/{group_id}")
def read_group(
    group_id: int,
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        group = svc.get_group(db, ctx, group_id)
    except ForesightError as exc:
        return fail_from(exc)
    return ok(data=svc.group_detail(db, group), meta=meta_now(organization_id=ctx.organization_id))


# ---- actions (organization admin) ----

@router.post("", status_code=status.HTTP_201_CREATED)
def create_group(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(CreateGroupIn, payload)
        group = svc.create_group(db, ctx, data)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.group_summary(group), status_code=status.HTTP_201_CREATED)


@router.patch("/{group_id}")
def update_group(
    group_id: int,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(UpdateGroupIn, payload)
        group = svc.update_group(db, ctx, group_id, data)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.group_detail(db, group))


@router.delete("/{group_id}")
def delete_group(
    group_id: int,
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        svc.delete_group(db, ctx, group_id)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok({"id": group_id})


@router.post("/{group_id}/members", status_code=status.HTTP_201_CREATED)
def add_member(
    group_id: int,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        data = validate_payload(AddGroupMemberIn, payload)
        member = svc.add_group_member(db, ctx, group_id, data.user_id)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.member_out(member), status_code=status.HTTP_201_CREATED)


@router.delete("/{group_id}/members/{user_id}")
def remove_member(
    group_id: int,
    user_id: int,
    ctx: RequestContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    try:
        svc.remove_group_member(db, ctx, group_id, user_id)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok({"group_id": group_id, "user_id": user_id})
