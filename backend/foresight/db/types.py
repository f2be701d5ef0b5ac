from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, TypeDecorator

from foresight.schemas.conversations import TRANSCRIPT_VERSION, Transcript


JSON_PAYLOAD = JSON().with_variant(JSONB(), "postgresql")


class TranscriptJSON(TypeDecorator):
    """Store conversation transcripts as versioned JSON, validated on the way in and out."""

    impl = JSON_PAYLOAD
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Any:  # noqa: ANN001
        if value is None:
            return None
        transcript = value if isinstance(value, Transcript) else Transcript.model_validate(value)
        return transcript.model_dump(mode="json")

    def process_result_value(self, value: Any, dialect) -> Any:  # noqa: ANN001
        if value is None:
            return Transcript()
        if isinstance(value, str):
            value = json.loads(value)
        if isinstance(value, list):
            # Legacy rows: a bare list of messages without a version tag
            value = {"version": TRANSCRIPT_VERSION, "messages": value}
        try:
            return Transcript.model_validate(value)
        except ValidationError as exc:
            raise ValueError(f"Stored transcript failed validation: {exc}") from exc
