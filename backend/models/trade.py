"""Trade model: immutable record of every executed BUY/SELL."""

from datetime import date, datetime, timezone
from sqlmodel import SQLModel, Field


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    instrument_id: int = Field(foreign_key="instrument.id", index=True)
    type: str = Field(index=True)  # "BUY" or "SELL"
    quantity: float
    price: float
    total_amount: float  # quantity * price
    commission: float = 0.0  # base commission, without IVA
    taxes: float = 0.0  # IVA on commission
    net_amount: float  # cash paid (BUY: total + fees) or received (SELL: total - fees)
    trade_date: date = Field(index=True)
    broker: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
