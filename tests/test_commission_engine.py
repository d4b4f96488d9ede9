"""Tests for the pure commission and custody calculations."""

from datetime import date
from types import SimpleNamespace

import pytest

from backend.exceptions import NotFoundError, ValidationError
from backend.services.commission_engine import (
    CustodyFees,
    FeeSchedule,
    OperationFees,
    analyze_historical_commissions,
    calculate_commission_impact_on_returns,
    calculate_commission_projection,
    calculate_custody_fee,
    calculate_custody_threshold,
    calculate_minimum_investment_for_threshold,
    calculate_operation_commission,
    compare_broker_commissions,
    default_schedule,
    project_custody,
)


def _schedule(
    name: str = "test",
    percentage: float = 0.005,
    minimum: float = 150.0,
    exempt: float = 2_000_000.0,
    custody_pct: float = 0.0025,
    custody_min: float = 300.0,
    is_active: bool = True,
) -> FeeSchedule:
    return FeeSchedule(
        name=name,
        broker=name.title(),
        buy=OperationFees(percentage, minimum, 0.21),
        sell=OperationFees(percentage, minimum, 0.21),
        custody=CustodyFees(exempt, custody_pct, custody_min, 0.21),
        is_active=is_active,
    )


def _trade(type_: str, amount: float, commission: float, taxes: float, day: date):
    return SimpleNamespace(type=type_, total_amount=amount, commission=commission, taxes=taxes, trade_date=day)


# ---------------------------------------------------------------------------
# Operation commission
# ---------------------------------------------------------------------------

class TestOperationCommission:
    def test_proportional_commission(self):
        result = calculate_operation_commission("BUY", 100_000, _schedule())
        assert result.base_commission == pytest.approx(500)
        assert result.iva == pytest.approx(105)
        assert result.total_commission == pytest.approx(605)
        assert result.minimum_applied is False
        assert result.effective_percentage == pytest.approx(0.605)

    def test_minimum_applies_for_small_amounts(self):
        result = calculate_operation_commission("SELL", 15_000, _schedule())
        assert result.base_commission == pytest.approx(150)
        assert result.minimum_applied is True
        assert result.total_commission == pytest.approx(181.5)

    @pytest.mark.parametrize("op_type", ["BUY", "SELL", "buy"])
    def test_net_amount_is_amount_minus_total(self, op_type):
        result = calculate_operation_commission(op_type, 50_000, _schedule())
        assert result.net_amount == pytest.approx(50_000 - result.total_commission)

    @pytest.mark.parametrize("amount", [1, 500, 15_000, 30_000, 1_000_000])
    def test_total_never_below_minimum_with_iva(self, amount):
        result = calculate_operation_commission("BUY", amount, _schedule())
        assert result.total_commission >= 150 * 1.21 - 1e-9

    def test_invalid_type_rejected(self):
        with pytest.raises(ValidationError):
            calculate_operation_commission("HOLD", 1000, _schedule())

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            calculate_operation_commission("BUY", amount, _schedule())


# ---------------------------------------------------------------------------
# Custody
# ---------------------------------------------------------------------------

class TestCustodyFee:
    def test_documented_example(self):
        fee = calculate_custody_fee(2_500_000, _schedule())
        assert fee.applicable_amount == pytest.approx(500_000)
        assert fee.monthly_fee == pytest.approx(1250)
        assert fee.total_monthly_cost == pytest.approx(1512.50)
        assert fee.annual_fee == pytest.approx(1512.50 * 12)
        assert fee.is_exempt is False

    @pytest.mark.parametrize("value", [0, 1_000_000, 2_000_000])
    def test_exempt_at_or_below_threshold(self, value):
        fee = calculate_custody_fee(value, _schedule())
        assert fee.is_exempt is True
        assert fee.total_monthly_cost == 0
        assert fee.effective_annual_rate == 0

    def test_minimum_applies_just_above_exemption(self):
        fee = calculate_custody_fee(2_010_000, _schedule())
        assert fee.monthly_fee == pytest.approx(300)
        assert fee.total_monthly_cost == pytest.approx(363)

    def test_negative_value_rejected(self):
        with pytest.raises(ValidationError):
            calculate_custody_fee(-1, _schedule())

    def test_threshold(self):
        threshold = calculate_custody_threshold(_schedule())
        assert threshold.exempt_amount == 2_000_000
        assert threshold.minimum_binding_until == pytest.approx(2_120_000)
        assert threshold.monthly_minimum_cost == pytest.approx(363)

    def test_threshold_without_proportional_fee(self):
        threshold = calculate_custody_threshold(_schedule(custody_pct=0.0))
        assert threshold.minimum_binding_until is None

    def test_projection_accumulates(self):
        rows = project_custody(2_500_000, 3, _schedule())
        assert [r.month for r in rows] == [1, 2, 3]
        assert rows[-1].cumulative_cost == pytest.approx(1512.50 * 3)

    def test_projection_with_growth_leaves_exemption(self):
        rows = project_custody(1_900_000, 4, _schedule(), monthly_growth=0.05)
        assert rows[0].is_exempt is True
        assert rows[-1].is_exempt is False

    def test_projection_requires_months(self):
        with pytest.raises(ValidationError):
            project_custody(1000, 0, _schedule())


# ---------------------------------------------------------------------------
# Projection and comparison
# ---------------------------------------------------------------------------

class TestProjection:
    def test_buy_adds_amount_to_custody_base(self):
        projection = calculate_commission_projection("BUY", 600_000, 2_000_000, _schedule())
        assert projection.custody.portfolio_value == pytest.approx(2_600_000)
        expected = projection.operation.total_commission + projection.custody.annual_fee
        assert projection.total_first_year_cost == pytest.approx(expected)
        assert projection.break_even_impact == pytest.approx(expected / 600_000 * 100)

    def test_sell_keeps_portfolio_value(self):
        projection = calculate_commission_projection("SELL", 100_000, 2_500_000, _schedule())
        assert projection.custody.portfolio_value == pytest.approx(2_500_000)


class TestCompareBrokers:
    def test_ranked_cheapest_first(self):
        cheap = _schedule("cheap", percentage=0.004, minimum=100)
        pricey = _schedule("pricey", percentage=0.008, minimum=300)
        rows = compare_broker_commissions("BUY", 100_000, 0, [pricey, cheap])
        assert [r.name for r in rows] == ["cheap", "pricey"]
        assert [r.ranking for r in rows] == [1, 2]
        assert rows[0].difference_from_best == 0
        assert rows[1].difference_from_best == pytest.approx(rows[1].total_cost - rows[0].total_cost)

    def test_ties_keep_input_order(self):
        configs = [_schedule("b"), _schedule("a"), _schedule("c")]
        first = compare_broker_commissions("BUY", 50_000, 0, configs)
        second = compare_broker_commissions("BUY", 50_000, 0, configs)
        assert [r.name for r in first] == ["b", "a", "c"]
        assert [r.name for r in first] == [r.name for r in second]

    def test_inactive_schedules_skipped(self):
        rows = compare_broker_commissions(
            "BUY", 50_000, 0, [_schedule("on"), _schedule("off", is_active=False)],
        )
        assert [r.name for r in rows] == ["on"]

    def test_empty_input(self):
        assert compare_broker_commissions("SELL", 50_000, 0, []) == []


# ---------------------------------------------------------------------------
# Minimum investment
# ---------------------------------------------------------------------------

class TestMinimumInvestment:
    def test_documented_example(self):
        result = calculate_minimum_investment_for_threshold(2.5, _schedule())
        assert result.minimum_amount == pytest.approx(7260)
        assert result.effective_percentage == pytest.approx(2.5)
        assert "Low minimum" in result.recommendation

    def test_unreachable_threshold_rejected(self):
        with pytest.raises(ValidationError):
            calculate_minimum_investment_for_threshold(0.5, _schedule())

    def test_high_band_recommendation(self):
        result = calculate_minimum_investment_for_threshold(0.7, _schedule(percentage=0.001, minimum=1000))
        assert result.minimum_amount > 100_000
        assert "High minimum" in result.recommendation


# ---------------------------------------------------------------------------
# Ledger analysis
# ---------------------------------------------------------------------------

class TestLedgerAnalysis:
    def test_historical_commissions_by_month(self):
        trades = [
            _trade("BUY", 10_000, 150, 31.5, date(2024, 1, 10)),
            _trade("BUY", 20_000, 150, 31.5, date(2024, 1, 20)),
            _trade("SELL", 40_000, 200, 42, date(2024, 2, 5)),
            _trade("SELL", 5_000, 150, 31.5, date(2023, 12, 1)),
        ]
        result = analyze_historical_commissions(trades, start_date=date(2024, 1, 1))
        assert result.trade_count == 3
        assert result.total_volume == pytest.approx(70_000)
        assert result.buy_commissions == pytest.approx(363)
        assert result.sell_commissions == pytest.approx(242)
        assert list(result.by_month) == ["2024-01", "2024-02"]
        assert result.by_month["2024-01"]["trades"] == 2

    def test_empty_ledger(self):
        result = analyze_historical_commissions([])
        assert result.trade_count == 0
        assert result.average_commission == 0
        assert result.commission_percentage == 0

    def test_commission_impact(self):
        trades = [_trade("BUY", 100_000, 500, 105, date(2024, 1, 1))]
        impact = calculate_commission_impact_on_returns(trades, 110_000)
        assert impact.gross_return == pytest.approx(10_000)
        assert impact.net_return == pytest.approx(9_395)
        assert impact.impact_pct == pytest.approx(0.605)


class TestDefaultSchedules:
    def test_known_broker(self):
        schedule = default_schedule("Galicia")
        assert schedule.name == "galicia"
        assert schedule.buy.minimum == 150

    def test_unknown_broker(self):
        with pytest.raises(NotFoundError):
            default_schedule("nobank")
