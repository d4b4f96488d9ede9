"""Quote model: one price observation per instrument and day."""

from datetime import date, datetime, timezone
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Quote(SQLModel, table=True):
    __tablename__ = "quote"
    __table_args__ = (
        UniqueConstraint("instrument_id", "quote_date", name="uq_quote_instrument_date"),
    )

    id: int | None = Field(default=None, primary_key=True)
    instrument_id: int = Field(foreign_key="instrument.id", index=True)
    price: float
    volume: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    quote_date: date = Field(index=True)
    quote_time: str | None = None  # HH:MM:SS of the last update
    source: str = "manual"  # "manual", "yahoo_finance"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
