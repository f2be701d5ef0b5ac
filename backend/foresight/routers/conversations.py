from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import action_error_from, action_ok, fail_from, meta_now, ok
from foresight.services import ai_conversations as svc

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("")
def list_conversations(
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    rows = svc.list_user_conversations(db, ctx.user_id)
    return ok(
        data=[svc.conversation_out(c) for c in rows],
        meta=meta_now(organization_id=ctx.organization_id),
    )


@router.get("/{conversation_id}")
def read_conversation(
    conversation_id: int,
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        conversation = svc.get_user_conversation(db, ctx, conversation_id)
    except ForesightError as exc:
        return fail_from(exc)
    return ok(
        data=svc.conversation_out(conversation, detail=True),
        meta=meta_now(organization_id=ctx.organization_id),
    )


@router.post("/{conversation_id}/abandon")
def abandon_conversation(
    conversation_id: int,
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    try:
        conversation = svc.abandon_conversation(db, ctx, conversation_id)
    except ForesightError as exc:
        return action_error_from(exc)
    return action_ok(svc.conversation_out(conversation))
