"""PortfolioPosition model: current holdings per instrument."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class PortfolioPosition(SQLModel, table=True):
    __tablename__ = "portfolio_position"

    id: int | None = Field(default=None, primary_key=True)
    instrument_id: int = Field(foreign_key="instrument.id", index=True, unique=True)
    quantity: float = 0.0
    average_cost: float = 0.0
    total_cost: float = 0.0  # cost basis, commission excluded
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
