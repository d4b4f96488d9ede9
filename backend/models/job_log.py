"""JobLog model: per-run execution log for each scheduled job."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class JobLog(SQLModel, table=True):
    __tablename__ = "job_log"

    id: int | None = Field(default=None, primary_key=True)
    job_name: str = Field(index=True)  # "quote_update", "uva_update", "custody_fee", "sell_monitor"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "error", "skipped"
    message: str | None = None
    duration_ms: int | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
