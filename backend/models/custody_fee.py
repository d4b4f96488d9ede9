"""CustodyFee model: monthly custody charge snapshot."""

from datetime import date, datetime, timezone
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class CustodyFee(SQLModel, table=True):
    __tablename__ = "custody_fee"
    __table_args__ = (
        UniqueConstraint("month", "broker", name="uq_custody_fee_month_broker"),
    )

    id: int | None = Field(default=None, primary_key=True)
    month: date = Field(index=True)  # first day of the charged month
    broker: str
    portfolio_value: float
    applicable_amount: float
    fee_percentage: float
    fee_amount: float  # without IVA
    iva_amount: float
    total_charged: float
    is_exempt: bool = False
    payment_date: date | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
