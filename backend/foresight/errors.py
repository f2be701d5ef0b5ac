"""Domain exceptions raised by the service layer.

Routers translate these into the response shapes of ``foresight.schemas.common``;
services never build HTTP responses themselves.
"""
from __future__ import annotations

from typing import Dict, List, Optional

FieldErrors = Dict[str, List[str]]

FORM_KEY = "_form"


class ForesightError(Exception):
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def errors(self) -> FieldErrors:
        return {FORM_KEY: [self.message]}


class NotFoundError(ForesightError):
    code = "NOT_FOUND"
    status_code = 404


class PermissionDeniedError(ForesightError):
    code = "FORBIDDEN"
    status_code = 403


class BusinessRuleError(ForesightError):
    """Validation failure carrying field-keyed messages for the calling form."""

    code = "VALIDATION_FAILED"
    status_code = 400

    def __init__(self, errors: FieldErrors, message: Optional[str] = None) -> None:
        self._errors = {k: list(v) for k, v in errors.items()}
        if message is None:
            first = next((msgs[0] for msgs in self._errors.values() if msgs), "Validation failed")
            message = first
        super().__init__(message)

    @property
    def errors(self) -> FieldErrors:
        return self._errors


class TokenLimitExceededError(ForesightError):
    code = "TOKEN_LIMIT_EXCEEDED"
    status_code = 429


class ConversationClosedError(ForesightError):
    code = "CONVERSATION_COMPLETED"
    status_code = 400


class EncryptionError(ForesightError):
    code = "ENCRYPTION_ERROR"
    status_code = 500


class AIConfigurationError(ForesightError):
    code = "AI_NOT_CONFIGURED"
    status_code = 500


def add_error(errors: FieldErrors, field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


__all__ = [
    "FORM_KEY",
    "FieldErrors",
    "ForesightError",
    "NotFoundError",
    "PermissionDeniedError",
    "BusinessRuleError",
    "TokenLimitExceededError",
    "ConversationClosedError",
    "EncryptionError",
    "AIConfigurationError",
    "add_error",
]
