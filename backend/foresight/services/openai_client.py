from __future__ import annotations

from openai import OpenAI
from sqlalchemy.orm import Session

from foresight.config import get_settings
from foresight.errors import AIConfigurationError, EncryptionError
from foresight.services.organizations import get_decrypted_api_key

MISSING_KEY_MESSAGE = (
    "OpenAI API key not configured for organization. Please configure it in Settings."
)


def create_org_openai_client(db: Session, organization_id: int) -> OpenAI:
    """Return an OpenAI client authenticated with the organization's own key."""
    try:
        api_key = get_decrypted_api_key(db, organization_id)
    except EncryptionError as exc:
        raise AIConfigurationError(
            "The organization's OpenAI API key could not be decrypted. Please re-enter it in Settings."
        ) from exc
    if not api_key:
        raise AIConfigurationError(MISSING_KEY_MESSAGE)

    settings = get_settings()
    return OpenAI(
        api_key=api_key,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.CHAT_TIMEOUT_SECONDS,
        max_retries=0,
    )
