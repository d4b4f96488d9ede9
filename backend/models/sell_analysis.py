"""SellAnalysis and SellAlert models: sell-urgency snapshots and alerts."""

from datetime import date, datetime, timezone
from sqlmodel import SQLModel, Field


class SellAnalysis(SQLModel, table=True):
    __tablename__ = "sell_analysis"

    id: int | None = Field(default=None, primary_key=True)
    position_id: int = Field(foreign_key="portfolio_position.id", index=True)
    instrument_id: int = Field(foreign_key="instrument.id", index=True)
    symbol: str = Field(index=True)
    current_price: float
    avg_buy_price: float
    quantity: float
    gross_profit_pct: float
    net_profit_pct: float
    gross_profit_ars: float
    net_profit_ars: float
    commission_impact: float
    inflation_adjustment: float
    sell_score: int = Field(index=True)
    technical_score: int
    fundamental_score: int
    profit_score: int
    time_score: int
    market_score: int
    recommendation: str = Field(index=True)  # HOLD, TAKE_PROFIT_1, TAKE_PROFIT_2, STOP_LOSS, TRAILING_STOP
    recommendation_reason: str
    risk_level: str  # LOW, MEDIUM, HIGH, CRITICAL
    days_held: int
    analysis_date: date = Field(index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SellAlert(SQLModel, table=True):
    __tablename__ = "sell_alert"

    id: int | None = Field(default=None, primary_key=True)
    position_id: int = Field(foreign_key="portfolio_position.id", index=True)
    instrument_id: int = Field(foreign_key="instrument.id", index=True)
    alert_type: str  # STOP_LOSS, TAKE_PROFIT_1, TAKE_PROFIT_2, TRAILING_STOP, TIME_BASED, TECHNICAL
    threshold_value: float | None = None
    current_value: float
    priority: str  # LOW, MEDIUM, HIGH, CRITICAL
    message: str
    is_active: bool = Field(default=True, index=True)
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
