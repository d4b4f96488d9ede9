"""Repository interface over the portfolio tables.

`SqlRepository` wraps an injected SQLModel `Session`; `InMemoryRepository`
keeps rows in plain dicts and is used as a test double. Calculators and the
position aggregator only talk to this interface.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from backend.exceptions import PersistenceError
from backend.models import (
    CommissionConfig,
    CustodyFee,
    Instrument,
    PortfolioPosition,
    Quote,
    SellAlert,
    Trade,
    UVA,
)

logger = logging.getLogger(__name__)


class PortfolioRepository(ABC):
    """Storage operations needed by the calculation services."""

    @abstractmethod
    def transaction(self):
        """Context manager: commit on success, roll back on any error."""

    @abstractmethod
    def add(self, row):
        """Insert or update a row and return it with its id assigned."""

    @abstractmethod
    def get_instrument(self, instrument_id: int) -> Instrument | None: ...

    @abstractmethod
    def list_instruments(self, active_only: bool = True) -> list[Instrument]: ...

    @abstractmethod
    def get_trade(self, trade_id: int) -> Trade | None: ...

    @abstractmethod
    def list_trades(self, instrument_id: int | None = None, trade_type: str | None = None) -> list[Trade]: ...

    @abstractmethod
    def get_position(self, instrument_id: int) -> PortfolioPosition | None: ...

    @abstractmethod
    def get_position_by_id(self, position_id: int) -> PortfolioPosition | None: ...

    @abstractmethod
    def list_positions(self, active_only: bool = True) -> list[PortfolioPosition]: ...

    @abstractmethod
    def latest_quote(self, instrument_id: int) -> Quote | None: ...

    @abstractmethod
    def quote_history(self, instrument_id: int, limit: int = 100) -> list[Quote]:
        """Quotes for an instrument, oldest first."""

    @abstractmethod
    def get_quote(self, instrument_id: int, quote_date: date) -> Quote | None: ...

    @abstractmethod
    def get_uva(self, value_date: date) -> UVA | None: ...

    @abstractmethod
    def uva_on_or_before(self, day: date) -> UVA | None: ...

    @abstractmethod
    def get_commission_config(self, name: str) -> CommissionConfig | None: ...

    @abstractmethod
    def active_commission_config(self) -> CommissionConfig | None: ...

    @abstractmethod
    def list_commission_configs(self) -> list[CommissionConfig]: ...

    @abstractmethod
    def custody_fee_for(self, month: date, broker: str) -> CustodyFee | None: ...

    @abstractmethod
    def active_alerts(self, position_id: int) -> list[SellAlert]: ...

    def latest_quotes(self, instrument_ids: list[int]) -> dict[int, Quote]:
        quotes = {}
        for instrument_id in instrument_ids:
            quote = self.latest_quote(instrument_id)
            if quote is not None:
                quotes[instrument_id] = quote
        return quotes

    def activate_commission_config(self, name: str) -> CommissionConfig | None:
        """Mark one config active and every other config inactive."""
        target = None
        now = datetime.now(timezone.utc)
        for cfg in self.list_commission_configs():
            should_be_active = cfg.name == name
            if should_be_active:
                target = cfg
            if cfg.is_active != should_be_active:
                cfg.is_active = should_be_active
                cfg.updated_at = now
                self.add(cfg)
        return target


# ---------------------------------------------------------------------------
# SQLModel implementation
# ---------------------------------------------------------------------------

class SqlRepository(PortfolioRepository):
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator["SqlRepository"]:
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}", exc_info=True)
            raise PersistenceError("Database operation failed", details={"error": str(e)}) from e
        except Exception:
            self.session.rollback()
            raise

    def add(self, row):
        self.session.add(row)
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to persist {type(row).__name__}: {e}", exc_info=True)
            raise PersistenceError(
                f"Failed to persist {type(row).__name__}", details={"error": str(e)}
            ) from e
        return row

    def get_instrument(self, instrument_id: int) -> Instrument | None:
        return self.session.get(Instrument, instrument_id)

    def list_instruments(self, active_only: bool = True) -> list[Instrument]:
        stmt = select(Instrument).order_by(Instrument.symbol)
        if active_only:
            stmt = stmt.where(Instrument.is_active == True)  # noqa: E712
        return list(self.session.exec(stmt).all())

    def get_trade(self, trade_id: int) -> Trade | None:
        return self.session.get(Trade, trade_id)

    def list_trades(self, instrument_id: int | None = None, trade_type: str | None = None) -> list[Trade]:
        stmt = select(Trade).order_by(Trade.trade_date, Trade.id)
        if instrument_id is not None:
            stmt = stmt.where(Trade.instrument_id == instrument_id)
        if trade_type is not None:
            stmt = stmt.where(Trade.type == trade_type)
        return list(self.session.exec(stmt).all())

    def get_position(self, instrument_id: int) -> PortfolioPosition | None:
        return self.session.exec(
            select(PortfolioPosition).where(PortfolioPosition.instrument_id == instrument_id)
        ).first()

    def get_position_by_id(self, position_id: int) -> PortfolioPosition | None:
        return self.session.get(PortfolioPosition, position_id)

    def list_positions(self, active_only: bool = True) -> list[PortfolioPosition]:
        stmt = select(PortfolioPosition).order_by(PortfolioPosition.instrument_id)
        if active_only:
            stmt = stmt.where(PortfolioPosition.quantity > 0)
        return list(self.session.exec(stmt).all())

    def latest_quote(self, instrument_id: int) -> Quote | None:
        return self.session.exec(
            select(Quote)
            .where(Quote.instrument_id == instrument_id)
            .order_by(Quote.quote_date.desc(), Quote.created_at.desc(), Quote.id.desc())
        ).first()

    def quote_history(self, instrument_id: int, limit: int = 100) -> list[Quote]:
        rows = self.session.exec(
            select(Quote)
            .where(Quote.instrument_id == instrument_id)
            .order_by(Quote.quote_date.desc(), Quote.id.desc())
            .limit(limit)
        ).all()
        return list(reversed(rows))

    def get_quote(self, instrument_id: int, quote_date: date) -> Quote | None:
        return self.session.exec(
            select(Quote).where(Quote.instrument_id == instrument_id, Quote.quote_date == quote_date)
        ).first()

    def get_uva(self, value_date: date) -> UVA | None:
        return self.session.exec(select(UVA).where(UVA.value_date == value_date)).first()

    def uva_on_or_before(self, day: date) -> UVA | None:
        return self.session.exec(
            select(UVA).where(UVA.value_date <= day).order_by(UVA.value_date.desc())
        ).first()

    def get_commission_config(self, name: str) -> CommissionConfig | None:
        return self.session.exec(
            select(CommissionConfig).where(CommissionConfig.name == name.lower())
        ).first()

    def active_commission_config(self) -> CommissionConfig | None:
        return self.session.exec(
            select(CommissionConfig).where(CommissionConfig.is_active == True)  # noqa: E712
        ).first()

    def list_commission_configs(self) -> list[CommissionConfig]:
        return list(self.session.exec(select(CommissionConfig).order_by(CommissionConfig.id)).all())

    def custody_fee_for(self, month: date, broker: str) -> CustodyFee | None:
        return self.session.exec(
            select(CustodyFee).where(CustodyFee.month == month, CustodyFee.broker == broker)
        ).first()

    def active_alerts(self, position_id: int) -> list[SellAlert]:
        return list(self.session.exec(
            select(SellAlert).where(
                SellAlert.position_id == position_id,
                SellAlert.is_active == True,  # noqa: E712
            )
        ).all())


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryRepository(PortfolioRepository):
    """Dict-backed repository. Transactions snapshot and restore all rows."""

    def __init__(self):
        self._rows: dict[type, dict[int, object]] = {}
        self._next_id: dict[type, int] = {}

    def _table(self, model: type) -> dict[int, object]:
        return self._rows.setdefault(model, {})

    def _all(self, model: type) -> list:
        return list(self._table(model).values())

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRepository"]:
        snapshot = {
            model: {row_id: row.model_dump() for row_id, row in rows.items()}
            for model, rows in self._rows.items()
        }
        next_ids = dict(self._next_id)
        try:
            yield self
        except Exception:
            self._rows = {
                model: {row_id: model(**data) for row_id, data in rows.items()}
                for model, rows in snapshot.items()
            }
            self._next_id = next_ids
            raise

    def add(self, row):
        model = type(row)
        if row.id is None:
            row.id = self._next_id.get(model, 0) + 1
            self._next_id[model] = row.id
        self._table(model)[row.id] = row
        return row

    def get_instrument(self, instrument_id: int) -> Instrument | None:
        return self._table(Instrument).get(instrument_id)

    def list_instruments(self, active_only: bool = True) -> list[Instrument]:
        rows = [i for i in self._all(Instrument) if not active_only or i.is_active]
        return sorted(rows, key=lambda i: i.symbol)

    def get_trade(self, trade_id: int) -> Trade | None:
        return self._table(Trade).get(trade_id)

    def list_trades(self, instrument_id: int | None = None, trade_type: str | None = None) -> list[Trade]:
        rows = [
            t for t in self._all(Trade)
            if (instrument_id is None or t.instrument_id == instrument_id)
            and (trade_type is None or t.type == trade_type)
        ]
        return sorted(rows, key=lambda t: (t.trade_date, t.id))

    def get_position(self, instrument_id: int) -> PortfolioPosition | None:
        for pos in self._all(PortfolioPosition):
            if pos.instrument_id == instrument_id:
                return pos
        return None

    def get_position_by_id(self, position_id: int) -> PortfolioPosition | None:
        return self._table(PortfolioPosition).get(position_id)

    def list_positions(self, active_only: bool = True) -> list[PortfolioPosition]:
        rows = [p for p in self._all(PortfolioPosition) if not active_only or p.quantity > 0]
        return sorted(rows, key=lambda p: p.instrument_id)

    def latest_quote(self, instrument_id: int) -> Quote | None:
        rows = [q for q in self._all(Quote) if q.instrument_id == instrument_id]
        if not rows:
            return None
        return max(rows, key=lambda q: (q.quote_date, q.created_at, q.id))

    def quote_history(self, instrument_id: int, limit: int = 100) -> list[Quote]:
        rows = sorted(
            (q for q in self._all(Quote) if q.instrument_id == instrument_id),
            key=lambda q: (q.quote_date, q.id),
        )
        return rows[-limit:]

    def get_quote(self, instrument_id: int, quote_date: date) -> Quote | None:
        for quote in self._all(Quote):
            if quote.instrument_id == instrument_id and quote.quote_date == quote_date:
                return quote
        return None

    def get_uva(self, value_date: date) -> UVA | None:
        for uva in self._all(UVA):
            if uva.value_date == value_date:
                return uva
        return None

    def uva_on_or_before(self, day: date) -> UVA | None:
        rows = [u for u in self._all(UVA) if u.value_date <= day]
        return max(rows, key=lambda u: u.value_date) if rows else None

    def get_commission_config(self, name: str) -> CommissionConfig | None:
        for cfg in self._all(CommissionConfig):
            if cfg.name == name.lower():
                return cfg
        return None

    def active_commission_config(self) -> CommissionConfig | None:
        for cfg in self._all(CommissionConfig):
            if cfg.is_active:
                return cfg
        return None

    def list_commission_configs(self) -> list[CommissionConfig]:
        return sorted(self._all(CommissionConfig), key=lambda c: c.id)

    def custody_fee_for(self, month: date, broker: str) -> CustodyFee | None:
        for fee in self._all(CustodyFee):
            if fee.month == month and fee.broker == broker:
                return fee
        return None

    def active_alerts(self, position_id: int) -> list[SellAlert]:
        return [a for a in self._all(SellAlert) if a.position_id == position_id and a.is_active]
