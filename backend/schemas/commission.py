"""Pydantic schemas for commission, custody and analysis requests."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class CommissionConfigCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    broker: str = Field(min_length=1, max_length=120)
    buy_percentage: float = Field(ge=0, lt=1)
    buy_minimum: float = Field(ge=0)
    buy_iva: float = Field(default=0.21, ge=0, lt=1)
    sell_percentage: float = Field(ge=0, lt=1)
    sell_minimum: float = Field(ge=0)
    sell_iva: float = Field(default=0.21, ge=0, lt=1)
    custody_exempt_amount: float = Field(ge=0)
    custody_monthly_percentage: float = Field(ge=0, lt=1)
    custody_monthly_minimum: float = Field(ge=0)
    custody_iva: float = Field(default=0.21, ge=0, lt=1)
    is_active: bool = False

    @model_validator(mode="after")
    def _normalize_name(self):
        self.name = self.name.strip().lower()
        if not self.name:
            raise ValueError("name must not be empty")
        return self


class OperationRequest(BaseModel):
    type: Literal["BUY", "SELL"]
    amount: float = Field(gt=0)
    broker: str | None = None


class ProjectionRequest(OperationRequest):
    portfolio_value: float = Field(default=0.0, ge=0)


class MinimumInvestmentRequest(BaseModel):
    threshold_percentage: float = Field(gt=0, le=100)
    type: Literal["BUY", "SELL"] = "BUY"
    broker: str | None = None


class CustodyRequest(BaseModel):
    portfolio_value: float = Field(ge=0)
    broker: str | None = None


class CustodyProjectionRequest(CustodyRequest):
    months: int = Field(default=12, ge=1, le=120)
    monthly_growth_pct: float = Field(default=0.0, ge=-100, le=100)


class CustodyRunRequest(BaseModel):
    month: date | None = None  # any day in the month to charge; default previous month
    dry_run: bool = False


class SellSimulationRequest(BaseModel):
    position_id: int = Field(gt=0)
    quantity: float = Field(gt=0)
    price: float = Field(gt=0)
    broker: str | None = None


class QuoteUpsert(BaseModel):
    instrument_id: int = Field(gt=0)
    price: float = Field(gt=0)
    quote_date: date | None = None
    volume: float | None = Field(default=None, ge=0)
    high: float | None = Field(default=None, gt=0)
    low: float | None = Field(default=None, gt=0)
    close: float | None = Field(default=None, gt=0)
