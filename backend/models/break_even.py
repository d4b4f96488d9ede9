"""BreakEvenAnalysis model: break-even snapshot for a trade."""

from datetime import date, datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class BreakEvenAnalysis(SQLModel, table=True):
    __tablename__ = "break_even_analysis"

    id: int | None = Field(default=None, primary_key=True)
    trade_id: int = Field(foreign_key="trade.id", index=True)
    instrument_id: int = Field(foreign_key="instrument.id", index=True)
    calculation_date: date
    break_even_price: float
    current_price: float | None = None
    distance_to_break_even: float | None = None
    distance_percentage: float | None = None
    days_to_break_even: int | None = None
    total_costs: float
    purchase_price: float
    commission_impact: float
    custody_impact: float
    inflation_impact: float
    tax_impact: float = 0.0
    scenario_type: str = "BASE"
    notes: str | None = None
    projections: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
