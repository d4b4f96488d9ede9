"""UVA model: daily inflation-indexed unit of account value."""

from datetime import date, datetime, timezone
from sqlmodel import SQLModel, Field


class UVA(SQLModel, table=True):
    __tablename__ = "uva"

    id: int | None = Field(default=None, primary_key=True)
    value_date: date = Field(unique=True, index=True)
    value: float
    source: str = "estadisticas"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
