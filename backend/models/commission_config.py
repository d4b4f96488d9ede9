"""CommissionConfig model: a named broker fee schedule."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class CommissionConfig(SQLModel, table=True):
    __tablename__ = "commission_config"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)  # broker key, e.g. "galicia"
    broker: str

    buy_percentage: float
    buy_minimum: float
    buy_iva: float = 0.21
    sell_percentage: float
    sell_minimum: float
    sell_iva: float = 0.21

    custody_exempt_amount: float
    custody_monthly_percentage: float
    custody_monthly_minimum: float
    custody_iva: float = 0.21

    is_active: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
