"""Organization settings and the monthly AI token quota.

The quota check before a chat turn is a soft pre-flight check; usage is
added afterwards with a single ``UPDATE ... SET used = used + n`` so
concurrent turns never lose increments even though they may overshoot the
limit by the size of the in-flight turns.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foresight.errors import BusinessRuleError, NotFoundError, TokenLimitExceededError
from foresight.models import Organization
from foresight.observability.metrics import AI_TOKENS_CONSUMED
from foresight.schemas.organizations import AIUsageOut, OrganizationOut, UpdateOrganizationIn
from foresight.security.crypto import decrypt_api_key, encrypt_api_key
from foresight.utils.dates import utcnow

logger = structlog.get_logger(__name__)

TOKEN_LIMIT_MESSAGE = (
    "Monthly AI token limit reached for your organization. "
    "Ask an organization admin to raise the limit or wait for the monthly reset."
)


def get_organization(db: Session, organization_id: int) -> Organization:
    org = db.get(Organization, organization_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


def update_organization(db: Session, organization_id: int, data: UpdateOrganizationIn) -> Organization:
    org = get_organization(db, organization_id)
    clash = db.execute(
        select(Organization.id).where(
            func.lower(Organization.name) == data.name.lower(), Organization.id != organization_id
        )
    ).first()
    if clash is not None:
        raise BusinessRuleError({"name": ["An organization with this name already exists"]})

    org.name = data.name
    org.description = (data.description or "").strip() or None
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BusinessRuleError({"name": ["An organization with this name already exists"]}) from exc
    db.refresh(org)
    logger.info("organization.updated", organization_id=organization_id)
    return org


def update_api_key(db: Session, organization_id: int, api_key: str) -> None:
    """Store the provider key; only the encrypted form is persisted."""
    org = get_organization(db, organization_id)
    org.encrypted_api_key = encrypt_api_key(api_key)
    db.commit()
    logger.info("organization.api_key_updated", organization_id=organization_id)


def get_decrypted_api_key(db: Session, organization_id: int) -> Optional[str]:
    org = get_organization(db, organization_id)
    if not org.encrypted_api_key:
        return None
    return decrypt_api_key(org.encrypted_api_key)


def update_ai_token_limit(db: Session, organization_id: int, token_limit: int) -> Organization:
    org = get_organization(db, organization_id)
    org.ai_token_limit = token_limit
    db.commit()
    db.refresh(org)
    logger.info("organization.token_limit_updated", organization_id=organization_id, token_limit=token_limit)
    return org


def check_token_limit(db: Session, organization_id: int) -> None:
    """Raise TokenLimitExceededError once this month's usage has reached the limit."""
    row = db.execute(
        select(Organization.ai_token_limit, Organization.ai_tokens_used_this_month).where(
            Organization.id == organization_id
        )
    ).first()
    if row is None:
        raise NotFoundError("Organization not found")
    limit, used = row
    if used >= limit:
        logger.info("organization.token_limit_reached", organization_id=organization_id, used=used, limit=limit)
        raise TokenLimitExceededError(TOKEN_LIMIT_MESSAGE)


def increment_ai_token_usage(db: Session, organization_id: int, tokens: int) -> None:
    if tokens <= 0:
        return
    db.execute(
        update(Organization)
        .where(Organization.id == organization_id)
        .values(ai_tokens_used_this_month=Organization.ai_tokens_used_this_month + tokens)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    AI_TOKENS_CONSUMED.inc(tokens)


def reset_monthly_token_usage(db: Session) -> int:
    """Zero every organization's monthly counter; returns the number of organizations touched."""
    result = db.execute(
        update(Organization)
        .values(ai_tokens_used_this_month=0, ai_tokens_reset_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


def get_ai_usage(db: Session, organization_id: int) -> Dict[str, Any]:
    org = get_organization(db, organization_id)
    db.refresh(org)
    return AIUsageOut(
        token_limit=org.ai_token_limit,
        tokens_used=org.ai_tokens_used_this_month,
        tokens_remaining=max(org.ai_token_limit - org.ai_tokens_used_this_month, 0),
        has_api_key=bool(org.encrypted_api_key),
    ).model_dump()


def organization_out(db: Session, organization_id: int) -> Dict[str, Any]:
    org = get_organization(db, organization_id)
    return OrganizationOut(
        id=org.id,
        name=org.name,
        description=org.description,
        ai_usage=get_ai_usage(db, organization_id),
    ).model_dump()
