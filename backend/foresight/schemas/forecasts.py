from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from foresight.models.enums import DataType, ForecastType

TITLE_MAX = 200
DESCRIPTION_MAX = 1000
CATEGORY_NAME_MAX = 100


def _required_text(v: str, label: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError(f"{label} is required")
    return v


class ForecastDraft(BaseModel):
    """Forecast fields as gathered by the AI assistant; also the tool-call argument schema."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1, max_length=TITLE_MAX, description="Forecast title")
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX, description="Optional description")
    type: ForecastType = Field(description="BINARY or CONTINUOUS only")
    data_type: Optional[DataType] = Field(
        default=None,
        description="For CONTINUOUS: CURRENCY, PERCENT, INTEGER, NUMBER, or DECIMAL",
    )
    due_date: datetime = Field(description="ISO date string when predictions are due (must be future)")
    data_release_date: datetime = Field(
        description="ISO date string when actual data will be known (must be >= dueDate)"
    )
    category_name: str = Field(min_length=1, max_length=CATEGORY_NAME_MAX, description="Category name (will be looked up or created)")
    options: Optional[List[str]] = Field(default=None, description="For CATEGORICAL only (not supported)")

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        return _required_text(v, "Title")

    @field_validator("category_name")
    @classmethod
    def _strip_category_name(cls, v: str) -> str:
        return _required_text(v, "Category name")


class CategoryNameIn(BaseModel):
    name: str = Field(
        min_length=1,
        max_length=CATEGORY_NAME_MAX,
        description="Category name (e.g., 'Equities', 'Movies', 'Crypto')",
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return _required_text(v, "Category name")


class CreateForecastIn(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX)
    type: ForecastType
    data_type: Optional[DataType] = None
    due_date: datetime
    data_release_date: datetime
    category_id: int
    options: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        return _required_text(v, "Title")


class RecordActualIn(BaseModel):
    actual_value: str = Field(min_length=1, max_length=255)


class CreateCategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=CATEGORY_NAME_MAX)
    description: Optional[str] = Field(default=None, max_length=600)
    color: Optional[str] = Field(default=None, max_length=16)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return _required_text(v, "Category name")


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    organization_id: int


class ForecastOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    type: ForecastType
    data_type: Optional[DataType] = None
    due_date: datetime
    data_release_date: datetime
    actual_value: Optional[str] = None
    options: Optional[List[str]] = None
    organization_id: int
    category_id: int
    created_at: datetime
