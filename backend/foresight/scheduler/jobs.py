"""Recurring maintenance jobs run by the APScheduler instance in ``setup``."""
from __future__ import annotations

import structlog

from foresight.db import session as db_session
from foresight.observability.instrument import log_job
from foresight.services.organizations import reset_monthly_token_usage

logger = structlog.get_logger(__name__)


@log_job("monthly-token-reset")
def reset_monthly_ai_tokens() -> int:
    """
    Zero every organization's monthly AI token counter.

    Runs on its own session; returns the number of organizations touched.
    """
    with db_session.session_scope() as db:
        reset = reset_monthly_token_usage(db)
    logger.info("ai_tokens.monthly_reset", organizations=reset)
    return reset
