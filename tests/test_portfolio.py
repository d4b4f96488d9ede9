"""Tests for trade recording and weighted-average position accounting."""

from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from backend.exceptions import InsufficientQuantity, NotFoundError, PersistenceError, ValidationError
from backend.models import Instrument, PortfolioPosition, Quote, Trade
from backend.services.portfolio import (
    apply_trade,
    build_summary,
    rebuild_position,
    record_trade,
    trade_net_amount,
)
from backend.services.repository import SqlRepository


def _buy(repo, instrument_id, quantity, price, **kwargs):
    kwargs.setdefault("commission", 0.0)
    kwargs.setdefault("trade_date", date(2024, 3, 1))
    return record_trade(
        repo, instrument_id=instrument_id, trade_type="BUY", quantity=quantity, price=price, **kwargs,
    )


def _sell(repo, instrument_id, quantity, price, **kwargs):
    kwargs.setdefault("commission", 0.0)
    kwargs.setdefault("trade_date", date(2024, 4, 1))
    return record_trade(
        repo, instrument_id=instrument_id, trade_type="SELL", quantity=quantity, price=price, **kwargs,
    )


class TestRecordTrade:
    def test_first_buy_creates_position(self, repo, add_instrument):
        inst = add_instrument()
        trade, position = _buy(repo, inst.id, 100, 150.0, commission=90.0, taxes=9.0)

        assert position.quantity == 100
        assert position.average_cost == pytest.approx(150.0)
        assert position.total_cost == pytest.approx(15_000.0)
        assert trade.total_amount == pytest.approx(15_000.0)
        assert trade.net_amount == pytest.approx(15_099.0)
        assert repo.get_position(inst.id) is position

    def test_weighted_average_after_buys(self, repo, add_instrument):
        inst = add_instrument()
        lots = [(10, 100.0), (30, 120.0), (5.5, 90.0)]
        for qty, price in lots:
            _, position = _buy(repo, inst.id, qty, price)

        expected = sum(q * p for q, p in lots) / sum(q for q, _ in lots)
        assert position.average_cost == pytest.approx(expected, abs=1e-6)
        assert position.total_cost == pytest.approx(position.quantity * position.average_cost)

    def test_sell_keeps_average_cost(self, repo, add_instrument):
        inst = add_instrument()
        _buy(repo, inst.id, 10, 100.0)
        _buy(repo, inst.id, 10, 200.0)
        _, position = _sell(repo, inst.id, 5, 400.0)

        assert position.quantity == 15
        assert position.average_cost == pytest.approx(150.0)
        assert position.total_cost == pytest.approx(2_250.0)

    def test_sell_to_zero_keeps_row(self, repo, add_instrument):
        inst = add_instrument()
        _buy(repo, inst.id, 10, 100.0)
        _, position = _sell(repo, inst.id, 10, 120.0)

        assert position.quantity == 0
        assert position.total_cost == 0
        assert repo.get_position(inst.id) is not None
        assert repo.list_positions(active_only=True) == []

    def test_oversell_rejected_without_mutation(self, repo, add_instrument):
        inst = add_instrument()
        _buy(repo, inst.id, 10, 100.0)

        with pytest.raises(InsufficientQuantity) as exc:
            _sell(repo, inst.id, 11, 100.0)

        assert exc.value.held == 10
        assert exc.value.requested == 11
        position = repo.get_position(inst.id)
        assert position.quantity == 10
        assert position.total_cost == pytest.approx(1_000.0)
        assert len(repo.list_trades()) == 1

    def test_sell_without_position_rejected(self, repo, add_instrument):
        inst = add_instrument()
        with pytest.raises(InsufficientQuantity):
            _sell(repo, inst.id, 1, 100.0)
        assert repo.list_trades() == []

    def test_unknown_instrument(self, repo):
        with pytest.raises(NotFoundError):
            _buy(repo, 999, 1, 100.0)

    @pytest.mark.parametrize("quantity,price", [(0, 100.0), (-1, 100.0), (1, 0.0)])
    def test_invalid_values_rejected(self, repo, add_instrument, quantity, price):
        inst = add_instrument()
        with pytest.raises(ValidationError):
            _buy(repo, inst.id, quantity, price)

    def test_invalid_type_rejected(self, repo, add_instrument):
        inst = add_instrument()
        with pytest.raises(ValidationError):
            record_trade(repo, instrument_id=inst.id, trade_type="SHORT", quantity=1, price=1,
                         trade_date=date(2024, 1, 1), commission=0.0)

    def test_commission_from_schedule(self, repo, add_instrument, schedule):
        inst = add_instrument()
        trade, _ = record_trade(
            repo, instrument_id=inst.id, trade_type="BUY", quantity=100, price=1000.0,
            trade_date=date(2024, 1, 2), config=schedule,
        )
        assert trade.commission == pytest.approx(500.0)
        assert trade.taxes == pytest.approx(105.0)
        assert trade.broker == "test"
        assert trade.net_amount == pytest.approx(100_605.0)

    def test_commission_or_schedule_required(self, repo, add_instrument):
        inst = add_instrument()
        with pytest.raises(ValidationError):
            record_trade(repo, instrument_id=inst.id, trade_type="BUY", quantity=1, price=1,
                         trade_date=date(2024, 1, 1))


class TestRecordTradeSql:
    def test_position_write_failure_rolls_back_trade(self, sql_engine):
        with Session(sql_engine) as s:
            s.add(Instrument(symbol="AAPL", company_name="Apple Inc."))
            s.commit()

        def _fail_insert(mapper, connection, target):
            raise SQLAlchemyError("disk I/O error")

        event.listen(PortfolioPosition, "before_insert", _fail_insert)
        try:
            with Session(sql_engine) as s:
                repo = SqlRepository(s)
                with pytest.raises(PersistenceError):
                    _buy(repo, 1, 100, 150.0)
        finally:
            event.remove(PortfolioPosition, "before_insert", _fail_insert)

        with Session(sql_engine) as s:
            assert s.exec(select(Trade)).all() == []
            assert s.exec(select(PortfolioPosition)).all() == []

    def test_commits_trade_and_position_together(self, sql_engine):
        with Session(sql_engine) as s:
            s.add(Instrument(symbol="AAPL", company_name="Apple Inc."))
            s.commit()
            _buy(SqlRepository(s), 1, 100, 150.0)

        with Session(sql_engine) as s:
            assert len(s.exec(select(Trade)).all()) == 1
            position = s.exec(select(PortfolioPosition)).one()
            assert position.total_cost == pytest.approx(15_000.0)


class TestHelpers:
    def test_net_amount_sign(self):
        assert trade_net_amount("BUY", 1000, 10, 2.1) == pytest.approx(1012.1)
        assert trade_net_amount("SELL", 1000, 10, 2.1) == pytest.approx(987.9)

    def test_apply_trade_does_not_mutate_on_oversell(self):
        position = apply_trade(None, 1, "BUY", 5, 10.0)
        with pytest.raises(InsufficientQuantity):
            apply_trade(position, 1, "SELL", 6, 10.0)
        assert position.quantity == 5
        assert position.total_cost == pytest.approx(50.0)


class TestRebuild:
    def test_rebuild_matches_incremental(self, repo, add_instrument):
        inst = add_instrument()
        _buy(repo, inst.id, 10, 100.0, trade_date=date(2024, 1, 1))
        _buy(repo, inst.id, 20, 130.0, trade_date=date(2024, 2, 1))
        _sell(repo, inst.id, 5, 150.0, trade_date=date(2024, 3, 1))
        incremental = repo.get_position(inst.id).model_dump()

        position = rebuild_position(repo, inst.id)
        assert position.quantity == pytest.approx(incremental["quantity"])
        assert position.average_cost == pytest.approx(incremental["average_cost"])
        assert position.total_cost == pytest.approx(incremental["total_cost"])

    def test_rebuild_without_trades(self, repo, add_instrument):
        inst = add_instrument()
        with pytest.raises(NotFoundError):
            rebuild_position(repo, inst.id)


class TestSummary:
    def test_market_value_uses_latest_quote(self, repo, add_instrument):
        aapl = add_instrument("AAPL")
        ko = add_instrument("KO")
        _buy(repo, aapl.id, 10, 100.0)
        _buy(repo, ko.id, 10, 50.0)
        repo.add(Quote(instrument_id=aapl.id, price=110.0, quote_date=date(2024, 5, 1)))
        repo.add(Quote(instrument_id=aapl.id, price=120.0, quote_date=date(2024, 5, 2)))

        summary = build_summary(repo)
        rows = {r.symbol: r for r in summary.positions}

        assert summary.position_count == 2
        assert rows["AAPL"].current_price == 120.0
        assert rows["AAPL"].market_value == pytest.approx(1200.0)
        assert rows["AAPL"].unrealized_pnl_pct == pytest.approx(20.0)
        # No quote: valued at cost
        assert rows["KO"].current_price is None
        assert rows["KO"].market_value == pytest.approx(500.0)
        assert summary.market_value == pytest.approx(1700.0)
        assert sum(r.weight_pct for r in summary.positions) == pytest.approx(100.0)

    def test_empty_portfolio(self, repo):
        summary = build_summary(repo)
        assert summary.position_count == 0
        assert summary.market_value == 0
        assert summary.unrealized_pnl_pct == 0
