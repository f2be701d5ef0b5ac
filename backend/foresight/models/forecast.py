from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from foresight.db.base import Base
from foresight.models.enums import DataType, ForecastType, enum_column_type


class Forecast(Base):
    __tablename__ = "forecasts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(enum_column_type(ForecastType, "forecast_type"), nullable=False)
    data_type = Column(enum_column_type(DataType, "data_type"), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=False)
    data_release_date = Column(DateTime(timezone=True), nullable=False)
    # String-encoded, interpreted per forecast type like Prediction.value
    actual_value = Column(String(255), nullable=True)
    options = Column(JSON, nullable=True)

    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization")
    category = relationship("Category", back_populates="forecasts")
    predictions = relationship("Prediction", back_populates="forecast", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("organization_id", "title", name="uq_forecasts_org_title"),
        Index("ix_forecasts_org_due", "organization_id", "due_date"),
    )
