from __future__ import annotations

import logging
from typing import Any, Dict

import structlog

from foresight.config import get_settings

# Never let credentials or provider keys reach the log stream
REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({
    "api_key",
    "encrypted_api_key",
    "password",
    "password_hash",
    "authorization",
    "access_token",
    "refresh_token",
})


def configure_logging(level: str | None = None) -> None:
    """JSON lines on stdout via structlog, with request/user context merged in."""
    log_level = (level or get_settings().LOG_LEVEL).upper()

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )
    # httpx logs every request the OpenAI SDK makes at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            _event_from_msg,
            redact_secrets,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def redact_secrets(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS and event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def _event_from_msg(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if "event" in event_dict:
        return event_dict
    msg = event_dict.pop("msg", None)
    if msg is not None:
        event_dict["event"] = msg
    return event_dict
