"""Instrument model: a CEDEAR available for trading."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Instrument(SQLModel, table=True):
    __tablename__ = "instrument"

    id: int | None = Field(default=None, primary_key=True)
    symbol: str = Field(unique=True, index=True)  # stored uppercase
    company_name: str
    sector: str | None = None
    industry: str | None = None
    is_esg_compliant: bool = False
    is_vegan_friendly: bool = False
    underlying_symbol: str | None = None
    underlying_currency: str = "USD"
    ratio: float = 1.0  # CEDEARs per underlying share
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
