"""End-to-end API tests over an in-memory SQLite database."""

from datetime import date, datetime, timezone

import pytest
from sqlmodel import Session

from backend.models import UVA


def _data(resp):
    body = resp.json()
    assert body["success"] is True, body
    return body["data"]


def _error(resp, status: int, code: str):
    assert resp.status_code == status, resp.text
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    return body["error"]


@pytest.fixture
def instrument(client):
    resp = client.post("/api/instruments", json={"symbol": " aapl ", "company_name": "Apple Inc.", "sector": "Technology"})
    assert resp.status_code == 201
    return _data(resp)


@pytest.fixture
def bought(client, instrument):
    resp = client.post("/api/trades", json={
        "instrument_id": instrument["id"], "type": "BUY", "quantity": 100, "price": 150.0,
        "trade_date": "2024-01-02", "commission": 90.0, "taxes": 9.0,
    })
    assert resp.status_code == 201, resp.text
    return _data(resp)


def test_health(client):
    assert client.get("/api/system/health").json() == {"status": "ok"}


def test_only_api_routes_are_served(client):
    assert client.get("/index.html").status_code == 404
    assert client.get("/assets/app.js").status_code == 404


class TestInstruments:
    def test_create_normalizes_symbol(self, instrument):
        assert instrument["symbol"] == "AAPL"
        assert instrument["is_active"] is True

    def test_duplicate_rejected(self, client, instrument):
        resp = client.post("/api/instruments", json={"symbol": "AAPL", "company_name": "Apple"})
        _error(resp, 400, "VALIDATION_ERROR")

    def test_invalid_body_uses_envelope(self, client):
        resp = client.post("/api/instruments", json={"symbol": "", "company_name": "x"})
        error = _error(resp, 422, "VALIDATION_ERROR")
        assert error["details"]["errors"]

    def test_filters_and_toggles(self, client, instrument):
        client.post("/api/instruments", json={"symbol": "KO", "company_name": "Coca-Cola", "sector": "Consumer"})
        toggled = _data(client.post(f"/api/instruments/{instrument['id']}/toggle-esg"))
        assert toggled["is_esg_compliant"] is True

        esg = _data(client.get("/api/instruments", params={"esg": True}))
        assert [i["symbol"] for i in esg] == ["AAPL"]
        found = _data(client.get("/api/instruments", params={"search": "coca"}))
        assert [i["symbol"] for i in found] == ["KO"]

    def test_update(self, client, instrument):
        updated = _data(client.put(f"/api/instruments/{instrument['id']}", json={"ratio": 10, "industry": "Hardware"}))
        assert updated["ratio"] == 10
        assert updated["company_name"] == "Apple Inc."

    def test_update_rejects_null_for_required_columns(self, client, instrument):
        for field in ("company_name", "is_active", "ratio", "underlying_currency"):
            resp = client.put(f"/api/instruments/{instrument['id']}", json={field: None})
            _error(resp, 422, "VALIDATION_ERROR")
        current = _data(client.get(f"/api/instruments/{instrument['id']}"))
        assert current["company_name"] == "Apple Inc."
        assert current["is_active"] is True

    def test_update_allows_clearing_optional_columns(self, client, instrument):
        updated = _data(client.put(f"/api/instruments/{instrument['id']}", json={"sector": None}))
        assert updated["sector"] is None

    def test_soft_delete(self, client, instrument):
        _data(client.delete(f"/api/instruments/{instrument['id']}"))
        assert _data(client.get("/api/instruments")) == []
        inactive = _data(client.get("/api/instruments", params={"active": False}))
        assert inactive[0]["symbol"] == "AAPL"

    def test_missing(self, client):
        _error(client.get("/api/instruments/999"), 404, "NOT_FOUND")


class TestTrades:
    def test_buy_updates_position(self, bought):
        assert bought["trade"]["net_amount"] == pytest.approx(15_099.0)
        assert bought["position"]["quantity"] == 100
        assert bought["position"]["average_cost"] == pytest.approx(150.0)
        assert bought["position"]["total_cost"] == pytest.approx(15_000.0)

    def test_commission_from_active_config(self, client, instrument):
        resp = client.post("/api/trades", json={
            "instrument_id": instrument["id"], "type": "BUY", "quantity": 10, "price": 1000.0,
        })
        trade = _data(resp)["trade"]
        # galicia: 0.5% with a 150 minimum
        assert trade["commission"] == pytest.approx(150.0)
        assert trade["taxes"] == pytest.approx(31.5)
        assert trade["broker"] == "galicia"

    def test_oversell_conflict(self, client, instrument, bought):
        resp = client.post("/api/trades", json={
            "instrument_id": instrument["id"], "type": "SELL", "quantity": 101, "price": 150.0, "commission": 0,
        })
        error = _error(resp, 409, "INSUFFICIENT_QUANTITY")
        assert error["details"]["held"] == 100
        position = _data(client.get(f"/api/portfolio/positions/{instrument['id']}"))["position"]
        assert position["quantity"] == 100
        assert len(_data(client.get("/api/trades"))) == 1

    def test_invalid_quantity(self, client, instrument):
        resp = client.post("/api/trades", json={
            "instrument_id": instrument["id"], "type": "BUY", "quantity": 0, "price": 1.0,
        })
        _error(resp, 422, "VALIDATION_ERROR")

    def test_unknown_instrument(self, client):
        resp = client.post("/api/trades", json={
            "instrument_id": 42, "type": "BUY", "quantity": 1, "price": 1.0, "commission": 0,
        })
        _error(resp, 404, "NOT_FOUND")

    def test_correction_recomputes_net(self, client, bought):
        trade_id = bought["trade"]["id"]
        corrected = _data(client.patch(f"/api/trades/{trade_id}", json={"commission": 100.0, "notes": "fee fix"}))
        assert corrected["net_amount"] == pytest.approx(15_109.0)
        assert corrected["notes"] == "fee fix"
        assert corrected["quantity"] == 100

    def test_summary(self, client, bought):
        summary = _data(client.get("/api/trades/summary"))
        assert summary["buy_count"] == 1
        assert summary["commissions"]["total_commissions"] == pytest.approx(99.0)


class TestPortfolio:
    def test_summary_with_quote(self, client, instrument, bought):
        _data(client.post("/api/quotes", json={
            "instrument_id": instrument["id"], "price": 165.0, "quote_date": "2024-02-01",
        }))
        summary = _data(client.get("/api/portfolio/summary"))
        assert summary["position_count"] == 1
        assert summary["market_value"] == pytest.approx(16_500.0)
        assert summary["unrealized_pnl_pct"] == pytest.approx(10.0)

    def test_rebuild(self, client, instrument, bought):
        position = _data(client.post(f"/api/portfolio/rebuild/{instrument['id']}"))
        assert position["quantity"] == 100
        assert position["total_cost"] == pytest.approx(15_000.0)

    def test_quote_same_day_replaced(self, client, instrument):
        for price in (10.0, 12.0):
            client.post("/api/quotes", json={"instrument_id": instrument["id"], "price": price, "quote_date": "2024-02-01"})
        history = _data(client.get(f"/api/quotes/history/{instrument['id']}"))
        assert [q["price"] for q in history] == [12.0]


class TestCommissions:
    def test_seeded_configs(self, client):
        configs = _data(client.get("/api/commissions/configs"))
        assert {c["name"] for c in configs} == {"galicia", "santander", "macro"}
        assert [c["name"] for c in configs if c["is_active"]] == ["galicia"]

    def test_calculate(self, client):
        result = _data(client.post("/api/commissions/calculate", json={"type": "SELL", "amount": 100_000}))
        assert result["total_commission"] == pytest.approx(605.0)
        assert result["net_amount"] == pytest.approx(99_395.0)

    def test_compare_ranks_all_brokers(self, client):
        rows = _data(client.post("/api/commissions/compare", json={"type": "BUY", "amount": 100_000}))
        assert [r["ranking"] for r in rows] == [1, 2, 3]
        assert rows[0]["difference_from_best"] == 0
        costs = [r["total_cost"] for r in rows]
        assert costs == sorted(costs)

    def test_minimum_investment(self, client):
        result = _data(client.post("/api/commissions/minimum-investment", json={"threshold_percentage": 2.5}))
        assert result["minimum_amount"] == pytest.approx(7260.0)

    def test_minimum_investment_unreachable(self, client):
        resp = client.post("/api/commissions/minimum-investment", json={"threshold_percentage": 0.1})
        _error(resp, 400, "VALIDATION_ERROR")

    def test_activate(self, client):
        _data(client.post("/api/commissions/configs/macro/activate"))
        configs = _data(client.get("/api/commissions/configs"))
        assert [c["name"] for c in configs if c["is_active"]] == ["macro"]
        assert _data(client.get("/api/commissions/schedule"))["name"] == "macro"

    def test_unknown_broker(self, client):
        resp = client.post("/api/commissions/calculate", json={"type": "BUY", "amount": 1000, "broker": "nobank"})
        _error(resp, 404, "NOT_FOUND")

    def test_create_config(self, client):
        resp = client.post("/api/commissions/configs", json={
            "name": "Cheap", "broker": "Cheap Broker",
            "buy_percentage": 0.001, "buy_minimum": 10, "sell_percentage": 0.001, "sell_minimum": 10,
            "custody_exempt_amount": 0, "custody_monthly_percentage": 0, "custody_monthly_minimum": 0,
        })
        assert resp.status_code == 201
        assert _data(resp)["name"] == "cheap"
        rows = _data(client.post("/api/commissions/compare", json={"type": "BUY", "amount": 100_000}))
        assert rows[0]["name"] == "cheap"


class TestCustody:
    def test_calculate(self, client):
        result = _data(client.post("/api/custody/calculate", json={"portfolio_value": 2_500_000}))
        # galicia: exempt up to 1M, 0.25% monthly
        assert result["applicable_amount"] == pytest.approx(1_500_000)
        assert result["total_monthly_cost"] == pytest.approx(3750 * 1.21)

    def test_threshold_and_projection(self, client):
        threshold = _data(client.get("/api/custody/threshold"))
        assert threshold["exempt_amount"] == 1_000_000
        rows = _data(client.post("/api/custody/projection", json={"portfolio_value": 500_000, "months": 6}))
        assert len(rows) == 6
        assert all(r["is_exempt"] for r in rows)


class TestAnalysis:
    def test_break_even_snapshot(self, client, bought):
        trade_id = bought["trade"]["id"]
        result = _data(client.post(f"/api/break-even/analyze/{trade_id}"))
        assert result["analysis"]["break_even_price"] > 150.0
        assert result["snapshot_id"] is not None
        assert result["optimizations"] == result["analysis"]["optimizations"]
        history = _data(client.get(f"/api/break-even/history/{trade_id}"))
        assert len(history) == 1

    def test_sell_analysis_and_alerts(self, client, instrument, bought):
        client.post("/api/quotes", json={"instrument_id": instrument["id"], "price": 120.0})
        position_id = bought["position"]["id"]

        result = _data(client.post(f"/api/sell-analysis/analyze/{position_id}"))
        assert result["recommendation"] == "STOP_LOSS"

        alerts = _data(client.get("/api/sell-analysis/alerts"))
        assert [a["alert_type"] for a in alerts] == ["STOP_LOSS"]
        read = _data(client.post(f"/api/sell-analysis/alerts/{alerts[0]['id']}/read"))
        assert read["is_read"] is True
        assert _data(client.get("/api/sell-analysis/alerts", params={"unread_only": True})) == []

    def test_simulate(self, client, bought):
        sim = _data(client.post("/api/sell-analysis/simulate", json={
            "position_id": bought["position"]["id"], "quantity": 50, "price": 160.0,
        }))
        assert sim["remaining_quantity"] == 50
        assert sim["cost_basis"] == pytest.approx(7_500.0)

    def test_missing_position(self, client):
        _error(client.post("/api/sell-analysis/analyze/99"), 404, "NOT_FOUND")


class TestUvaAndSystem:
    def test_inflation_adjustment_without_data(self, client):
        resp = client.get("/api/uva/inflation-adjustment",
                          params={"amount": 1000, "from_date": "2024-01-01", "to_date": "2024-02-01"})
        _error(resp, 404, "NOT_FOUND")

    def test_inflation_adjustment_defaults_to_utc_today(self, client, sql_engine, monkeypatch):
        from backend.api import uva as uva_api

        class _Clock(datetime):
            @classmethod
            def now(cls, tz=None):
                return datetime(2024, 3, 1, 1, 30, tzinfo=timezone.utc)

        monkeypatch.setattr(uva_api, "datetime", _Clock)
        with Session(sql_engine) as s:
            s.add(UVA(value_date=date(2024, 1, 1), value=100.0))
            s.add(UVA(value_date=date(2024, 3, 1), value=110.0))
            s.commit()

        result = _data(client.get("/api/uva/inflation-adjustment",
                                  params={"amount": 1000, "from_date": "2024-01-01"}))
        assert result["to_date"] == "2024-03-01"
        assert result["adjusted_amount"] == pytest.approx(1100.0)

    def test_unknown_job(self, client):
        _error(client.post("/api/system/trigger/nope"), 404, "NOT_FOUND")

    def test_trigger_custody_and_logs(self, client):
        result = _data(client.post("/api/system/trigger/custody_fee"))
        assert result["status"] == "success"
        logs = _data(client.get("/api/system/logs", params={"job_name": "custody_fee"}))
        assert [log["status"] for log in logs] == ["success"]
