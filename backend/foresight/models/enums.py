from __future__ import annotations

import enum

from sqlalchemy import Enum as SAEnum


class UserRole(str, enum.Enum):
    USER = "USER"
    ORG_ADMIN = "ORG_ADMIN"
    ADMIN = "ADMIN"


class ForecastType(str, enum.Enum):
    BINARY = "BINARY"
    CONTINUOUS = "CONTINUOUS"
    CATEGORICAL = "CATEGORICAL"


class DataType(str, enum.Enum):
    CURRENCY = "CURRENCY"
    PERCENT = "PERCENT"
    INTEGER = "INTEGER"
    NUMBER = "NUMBER"
    DECIMAL = "DECIMAL"


class AIConversationStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


def enum_column_type(enum_cls: type[enum.Enum], name: str):
    """Portable enum column storing the member value as VARCHAR."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
        length=32,
    )
