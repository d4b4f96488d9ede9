"""Pydantic schemas for Trade API."""

from datetime import date, datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class TradeCreate(BaseModel):
    instrument_id: int = Field(gt=0)
    type: Literal["BUY", "SELL"]
    quantity: float = Field(gt=0)
    price: float = Field(gt=0)
    trade_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())
    commission: float | None = Field(default=None, ge=0)  # computed from the broker schedule when omitted
    taxes: float | None = Field(default=None, ge=0)
    broker: str | None = None
    notes: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _taxes_need_commission(self):
        if self.taxes is not None and self.commission is None:
            raise ValueError("taxes can only be given together with commission")
        return self


class TradeCorrection(BaseModel):
    """Administrative fix of recorded fees, dates or notes. Quantity and price are not editable."""
    commission: float | None = Field(default=None, ge=0)
    taxes: float | None = Field(default=None, ge=0)
    trade_date: date | None = None
    broker: str | None = None
    notes: str | None = Field(default=None, max_length=500)


class TradeRead(BaseModel):
    id: int
    instrument_id: int
    type: str
    quantity: float
    price: float
    total_amount: float
    commission: float
    taxes: float
    net_amount: float
    trade_date: date
    broker: str | None
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
