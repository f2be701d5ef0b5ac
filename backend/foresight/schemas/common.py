from __future__ import annotations
from typing import Any, Dict, List, Optional
from fastapi import status as http
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from datetime import datetime, timezone
from fastapi.encoders import jsonable_encoder

from foresight import __version__
from foresight.errors import FORM_KEY, BusinessRuleError, ForesightError

class ApiError(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

class ResponseMeta(BaseModel):
    organization_id: Optional[int] = None
    params: Optional[Dict[str, Any]] = None
    generated_at: str
    version: str = __version__

class Envelope(BaseModel):
    ok: bool                              # <-- canonical flag for read endpoints
    data: Any | None = None
    error: ApiError | None = None
    meta: ResponseMeta

class ActionState(BaseModel):
    """Result of a mutating action: field-keyed errors (``_form`` for the rest) or data."""
    success: bool
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    data: Any | None = None

def ok(data: Any = None, meta: Optional[ResponseMeta] = None, status_code: int = http.HTTP_200_OK) -> JSONResponse:
    """
    Return unified success envelope. Pass meta through as-is (don't re-wrap).
    """
    if meta is None:
        meta = ResponseMeta(generated_at=datetime.now(timezone.utc).isoformat())
    payload = Envelope(ok=True, data=data, error=None, meta=meta).model_dump()
    return JSONResponse(content=jsonable_encoder(payload), status_code=status_code)

def fail(
    code: str,
    message: str,
    status_code: int = http.HTTP_400_BAD_REQUEST,
    details: Optional[Dict[str, Any]] = None,
    meta: Optional[ResponseMeta] = None,
) -> JSONResponse:
    """
    Return unified error envelope with ok=False.
    """
    if meta is None:
        meta = ResponseMeta(generated_at=datetime.now(timezone.utc).isoformat())
    payload = Envelope(
        ok=False,
        data=None,
        error=ApiError(code=code, message=message, details=details),
        meta=meta,
    ).model_dump()
    return JSONResponse(content=jsonable_encoder(payload), status_code=status_code)

def fail_from(exc: ForesightError, meta: Optional[ResponseMeta] = None) -> JSONResponse:
    details = exc.errors if set(exc.errors) != {FORM_KEY} else None
    return fail(code=exc.code, message=exc.message, status_code=exc.status_code, details=details, meta=meta)

def meta_now(*, organization_id: Optional[int] = None, **params) -> ResponseMeta:
    clean = {k: v for k, v in params.items() if v is not None}
    return ResponseMeta(
        organization_id=organization_id,
        params=clean or None,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )

def action_ok(data: Any = None, status_code: int = http.HTTP_200_OK) -> JSONResponse:
    payload = ActionState(success=True, errors={}, data=data).model_dump()
    return JSONResponse(content=jsonable_encoder(payload), status_code=status_code)

def action_error(
    errors: Dict[str, List[str]],
    data: Any = None,
    status_code: int = http.HTTP_400_BAD_REQUEST,
) -> JSONResponse:
    payload = ActionState(success=False, errors=errors, data=data).model_dump()
    return JSONResponse(content=jsonable_encoder(payload), status_code=status_code)

def action_error_from(exc: ForesightError, data: Any = None) -> JSONResponse:
    return action_error(exc.errors, data=data, status_code=exc.status_code)

def validation_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Flatten pydantic errors into the field-keyed shape forms expect."""
    out: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        field = loc[0] if loc else FORM_KEY
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.setdefault(field, []).append(msg)
    return out


def validate_payload(model: type[BaseModel], raw: Any) -> Any:
    """Schema-validate a raw action payload; failures surface as BusinessRuleError."""
    try:
        return model.model_validate(raw if raw is not None else {})
    except ValidationError as exc:
        raise BusinessRuleError(validation_errors(exc)) from exc
