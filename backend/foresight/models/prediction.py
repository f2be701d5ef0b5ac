from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from foresight.db.base import Base


class Prediction(Base):
    __tablename__ = "predictions"

    id = Column(Integer, primary_key=True, index=True)
    forecast_id = Column(Integer, ForeignKey("forecasts.id", ondelete="CASCADE"), nullable=False)
    # Submitter; for group predictions this is the member who submitted
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)

    value = Column(String(255), nullable=False)
    confidence = Column(Integer, nullable=True)
    reasoning = Column(Text, nullable=True)
    method = Column(String(100), nullable=True)
    estimated_time = Column(Integer, nullable=True)  # minutes
    equity_investment = Column(Float, nullable=True)
    debt_financing = Column(Float, nullable=True)

    # Derived once the forecast's actual value is recorded
    is_correct = Column(Boolean, nullable=True)
    actual_error = Column(Float, nullable=True)
    absolute_actual_error_pct = Column(Float, nullable=True)
    absolute_forecast_error_pct = Column(Float, nullable=True)
    brier_score = Column(Float, nullable=True)
    net_profit = Column(Float, nullable=True)
    interest_on_debt = Column(Float, nullable=True)
    roi = Column(Float, nullable=True)
    scored_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    forecast = relationship("Forecast", back_populates="predictions")
    user = relationship("User")
    group = relationship("Group", back_populates="predictions")

    __table_args__ = (
        UniqueConstraint("forecast_id", "user_id", name="uq_predictions_forecast_user"),
        UniqueConstraint("forecast_id", "group_id", name="uq_predictions_forecast_group"),
        Index("ix_predictions_user", "user_id"),
        Index("ix_predictions_group", "group_id"),
    )

    @property
    def is_group_prediction(self) -> bool:
        return self.group_id is not None
