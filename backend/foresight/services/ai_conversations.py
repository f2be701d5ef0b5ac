from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from foresight.core.security import RequestContext
from foresight.errors import ConversationClosedError, NotFoundError, PermissionDeniedError
from foresight.models import AIConversation
from foresight.models.enums import AIConversationStatus
from foresight.schemas.conversations import (
    ConversationDetailOut,
    ConversationMessage,
    ConversationOut,
    Transcript,
)

logger = structlog.get_logger(__name__)

TITLE_MAX = 60

COMPLETED_MESSAGE = (
    "Conversation is already completed. Start a new conversation to create another forecast."
)


def make_title(first_message: str) -> str:
    title = first_message.strip()
    if len(title) > TITLE_MAX:
        title = title[: TITLE_MAX - 3] + "..."
    return title or "New conversation"


def create_conversation(db: Session, ctx: RequestContext, first_message: str) -> AIConversation:
    conversation = AIConversation(
        organization_id=ctx.organization_id,
        user_id=ctx.user_id,
        title=make_title(first_message),
        transcript=Transcript(messages=[ConversationMessage(role="user", content=first_message)]),
        token_count=0,
        status=AIConversationStatus.IN_PROGRESS,
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    logger.info("conversation.created", conversation_id=conversation.id, user_id=ctx.user_id)
    return conversation


def get_conversation(db: Session, conversation_id: int) -> Optional[AIConversation]:
    return db.get(AIConversation, conversation_id)


def get_user_conversation(db: Session, ctx: RequestContext, conversation_id: int) -> AIConversation:
    conversation = get_conversation(db, conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if conversation.user_id != ctx.user_id:
        raise PermissionDeniedError("Conversation does not belong to user")
    return conversation


def ensure_open(conversation: AIConversation) -> None:
    if conversation.status == AIConversationStatus.COMPLETED:
        raise ConversationClosedError(COMPLETED_MESSAGE)


def append_turn(
    db: Session,
    conversation_id: int,
    messages: Sequence[ConversationMessage],
    tokens: int = 0,
) -> AIConversation:
    """Append messages to the transcript and add the turn's tokens to the running count."""
    conversation = get_conversation(db, conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    conversation.transcript = conversation.transcript.append(*messages)
    conversation.token_count = (conversation.token_count or 0) + max(tokens, 0)
    db.commit()
    db.refresh(conversation)
    return conversation


def complete_conversation(
    db: Session, conversation_id: int, forecast_id: int, *, commit: bool = True
) -> AIConversation:
    conversation = get_conversation(db, conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    conversation.status = AIConversationStatus.COMPLETED
    conversation.forecast_id = forecast_id
    if commit:
        db.commit()
    logger.info("conversation.completed", conversation_id=conversation_id, forecast_id=forecast_id)
    return conversation


def abandon_conversation(db: Session, ctx: RequestContext, conversation_id: int) -> AIConversation:
    conversation = get_user_conversation(db, ctx, conversation_id)
    ensure_open(conversation)
    conversation.status = AIConversationStatus.ABANDONED
    db.commit()
    db.refresh(conversation)
    logger.info("conversation.abandoned", conversation_id=conversation_id, user_id=ctx.user_id)
    return conversation


def list_user_conversations(db: Session, user_id: int) -> List[AIConversation]:
    return (
        db.execute(
            select(AIConversation)
            .where(AIConversation.user_id == user_id)
            .order_by(AIConversation.created_at.desc(), AIConversation.id.desc())
        )
        .scalars()
        .all()
    )


def get_message_count(db: Session, conversation_id: int) -> int:
    conversation = get_conversation(db, conversation_id)
    return len(conversation.transcript) if conversation is not None else 0


def conversation_out(conversation: AIConversation, *, detail: bool = False) -> Dict[str, Any]:
    if detail:
        data = ConversationDetailOut.model_validate(
            {**ConversationOut.model_validate(conversation).model_dump(), "messages": conversation.messages}
        )
    else:
        data = ConversationOut.model_validate(conversation)
    out = data.model_dump(mode="json")
    out["message_count"] = len(conversation.transcript)
    return out
