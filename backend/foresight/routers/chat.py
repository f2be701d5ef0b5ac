# foresight/routers/chat.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext, require_organization
from foresight.db.session import get_db
from foresight.errors import ForesightError
from foresight.schemas.common import fail_from
from foresight.services.chat import begin_chat_turn, conversation_header, stream_chat_turn

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/forecasts")
def chat_forecasts(
    payload: Any = Body(None),
    ctx: RequestContext = Depends(require_organization),
    db: Session = Depends(get_db),
):
    """
    Stream the forecast assistant's reply as plain text.

    Every check that can fail with a status code runs before the first byte is
    sent; once streaming starts the response is always 200.
    """
    try:
        turn = begin_chat_turn(db, ctx, payload)
    except ForesightError as exc:
        return fail_from(exc)
    return StreamingResponse(
        stream_chat_turn(turn),
        media_type="text/plain; charset=utf-8",
        headers=conversation_header(turn),
    )
