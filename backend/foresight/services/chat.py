"""One turn of the forecast assistant chat.

``begin_chat_turn`` runs every check that can still produce an HTTP error
(quota, payload, conversation ownership and state, provider key). The
returned turn is then streamed by ``stream_chat_turn``, which executes tool
calls between model round-trips and records the transcript and token usage
once the reply is complete. A client that disconnects mid-stream aborts the
turn; nothing is recorded for it. A provider error records no reply but
still charges the tokens the provider already reported.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from time import monotonic
from typing import Any, Dict, Iterator, List

import structlog
from openai import OpenAI, OpenAIError
from sqlalchemy.orm import Session

from foresight.config import get_settings
from foresight.core.security import RequestContext
from foresight.db import session as db_session
from foresight.errors import BusinessRuleError, FORM_KEY
from foresight.prompts import forecast_agent_prompt
from foresight.schemas.chat import ChatMessageIn, ChatRequest
from foresight.schemas.common import validate_payload
from foresight.schemas.conversations import ConversationMessage
from foresight.services.ai_conversations import (
    append_turn,
    create_conversation,
    ensure_open,
    get_user_conversation,
)
from foresight.services.ai_forecast_tools import ForecastToolbox, tool_definitions
from foresight.services.openai_client import create_org_openai_client
from foresight.services.organizations import check_token_limit, increment_ai_token_usage
from foresight.utils.dates import utcnow

logger = structlog.get_logger(__name__)

MESSAGES_REQUIRED = "Messages array is required"
FIRST_MESSAGE_FROM_USER = "First message must be from user"
PROVIDER_ERROR_NOTICE = "\n\n[The AI provider returned an error. Please try again.]"
TIMEOUT_NOTICE = "\n\n[The assistant took too long to respond. Please try again.]"


@dataclass
class ChatTurn:
    ctx: RequestContext
    conversation_id: int
    is_new: bool
    messages: List[ChatMessageIn]
    client: OpenAI


def _parse_request(payload: Any) -> ChatRequest:
    messages = payload.get("messages") if isinstance(payload, dict) else None
    if not isinstance(messages, list) or not messages:
        raise BusinessRuleError({"messages": [MESSAGES_REQUIRED]})
    return validate_payload(ChatRequest, payload)


def begin_chat_turn(db: Session, ctx: RequestContext, payload: Any) -> ChatTurn:
    check_token_limit(db, ctx.organization_id)
    request = _parse_request(payload)

    if request.conversation_id is not None:
        conversation = get_user_conversation(db, ctx, request.conversation_id)
        ensure_open(conversation)
        client = create_org_openai_client(db, ctx.organization_id)
        return ChatTurn(ctx, conversation.id, False, request.messages, client)

    first_user = next((m for m in request.messages if m.role == "user"), None)
    if first_user is None:
        raise BusinessRuleError({FORM_KEY: [FIRST_MESSAGE_FROM_USER]})
    # Resolve the key before creating anything so a misconfigured org leaves no empty conversation
    client = create_org_openai_client(db, ctx.organization_id)
    conversation = create_conversation(db, ctx, first_user.content)
    return ChatTurn(ctx, conversation.id, True, request.messages, client)


def _model_messages(messages: List[ChatMessageIn]) -> List[Dict[str, Any]]:
    # Client-supplied system messages are dropped; the server owns the system prompt
    out: List[Dict[str, Any]] = [
        {"role": "system", "content": forecast_agent_prompt(utcnow().date().isoformat())}
    ]
    out.extend({"role": m.role, "content": m.content} for m in messages if m.role != "system")
    return out


def finish_chat_turn(
    db: Session,
    turn: ChatTurn,
    reply: str,
    tokens: int,
) -> None:
    """Persist the completed turn and charge its tokens to conversation and organization."""
    new_messages: List[ConversationMessage] = []
    if not turn.is_new:
        latest_user = next((m for m in reversed(turn.messages) if m.role == "user"), None)
        if latest_user is not None:
            new_messages.append(ConversationMessage(role="user", content=latest_user.content))
    new_messages.append(ConversationMessage(role="assistant", content=reply))

    append_turn(db, turn.conversation_id, new_messages, tokens)
    increment_ai_token_usage(db, turn.ctx.organization_id, tokens)


def charge_tokens(db: Session, turn: ChatTurn, tokens: int) -> None:
    """Charge provider-reported usage for a turn that ends without a reply."""
    append_turn(db, turn.conversation_id, [], tokens)
    increment_ai_token_usage(db, turn.ctx.organization_id, tokens)


def stream_chat_turn(turn: ChatTurn) -> Iterator[str]:
    """Yield reply text chunks; runs on its own session since the request session is gone by now.

    The whole turn, every model round and tool call included, shares one
    deadline of ``CHAT_TIMEOUT_SECONDS``. Past it the open stream is closed
    and the text received so far is recorded as the reply.
    """
    settings = get_settings()
    started = monotonic()
    deadline = started + settings.CHAT_TIMEOUT_SECONDS
    log = logger.bind(conversation_id=turn.conversation_id, user_id=turn.ctx.user_id)
    with db_session.session_scope() as db:
        toolbox = ForecastToolbox(db, turn.ctx, turn.conversation_id)
        messages = _model_messages(turn.messages)
        tools = tool_definitions()
        reply_parts: List[str] = []
        tokens = 0
        steps = 0
        timed_out = False

        try:
            while steps < settings.CHAT_MAX_TOOL_STEPS:
                if monotonic() > deadline:
                    timed_out = True
                    break
                steps += 1
                stream = turn.client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=messages,
                    tools=tools,
                    stream=True,
                    stream_options={"include_usage": True},
                )
                text_parts: List[str] = []
                calls: Dict[int, Dict[str, str]] = {}
                for chunk in stream:
                    if monotonic() > deadline:
                        timed_out = True
                        stream.close()
                        break
                    usage = getattr(chunk, "usage", None)
                    if usage is not None:
                        tokens += usage.total_tokens or 0
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta.content:
                        text_parts.append(delta.content)
                        yield delta.content
                    for call in delta.tool_calls or []:
                        slot = calls.setdefault(call.index, {"id": "", "name": "", "arguments": ""})
                        if call.id:
                            slot["id"] = call.id
                        if call.function is not None:
                            slot["name"] += call.function.name or ""
                            slot["arguments"] += call.function.arguments or ""

                text = "".join(text_parts)
                if text:
                    reply_parts.append(text)
                # half-streamed tool calls are never executed
                if timed_out or not calls:
                    break

                messages.append({
                    "role": "assistant",
                    "content": text or None,
                    "tool_calls": [
                        {
                            "id": c["id"],
                            "type": "function",
                            "function": {"name": c["name"], "arguments": c["arguments"]},
                        }
                        for _, c in sorted(calls.items())
                    ],
                })
                for _, c in sorted(calls.items()):
                    result = toolbox.execute(c["name"], c["arguments"])
                    messages.append({
                        "role": "tool",
                        "tool_call_id": c["id"],
                        "content": json.dumps(result, default=str),
                    })
            else:
                log.warning("chat.tool_steps_exhausted", steps=steps)
        except OpenAIError as exc:
            log.error("chat.provider_error", error=str(exc), exc_type=type(exc).__name__, tokens=tokens)
            charge_tokens(db, turn, tokens)
            yield PROVIDER_ERROR_NOTICE
            return

        finish_chat_turn(db, turn, "\n".join(reply_parts), tokens)
        if timed_out:
            log.warning("chat.turn_timeout", steps=steps, timeout_s=settings.CHAT_TIMEOUT_SECONDS)
        log.info(
            "chat.turn_completed",
            tokens=tokens,
            steps=steps,
            timed_out=timed_out,
            forecast_id=toolbox.created_forecast_id,
            duration_ms=round((monotonic() - started) * 1000, 2),
        )
        if timed_out:
            yield TIMEOUT_NOTICE


def conversation_header(turn: ChatTurn) -> Dict[str, str]:
    return {"X-Conversation-Id": str(turn.conversation_id)}
