"""Break-even price analysis.

The break-even price is the sale price at which proceeds cover everything
the holding has cost: cash paid at purchase (price plus buy commission),
the commission of selling, custody accrued while held, loss of purchasing
power (UVA) and the estimated tax on long holdings.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone

from backend.exceptions import NotFoundError, ValidationError
from backend.models import BreakEvenAnalysis
from backend.services import commission_engine, portfolio, uva
from backend.services.commission_engine import FeeSchedule
from backend.services.repository import PortfolioRepository
from backend.utils.constants import (
    BREAK_EVEN_SCENARIOS,
    LONG_TERM_DAYS,
    PROJECTION_HORIZON_MONTHS,
    PROJECTION_STEP_MONTHS,
    TAX_GAIN_ASSUMPTION,
    TAX_RATE,
)

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30.44


@dataclass
class BreakEvenProjection:
    scenario_type: str
    months_ahead: int
    inflation_rate: float
    projected_break_even: float
    probability: float


@dataclass
class Optimization:
    type: str  # "COMMISSION", "CUSTODY", "TIMING", "INFLATION_HEDGE"
    title: str
    description: str
    potential_savings: float = 0.0


@dataclass
class BreakEvenResult:
    quantity: float
    purchase_price: float
    purchase_date: date
    days_held: int
    total_cost: float
    buy_commission: float
    sell_commission: float
    custody_impact: float
    inflation_impact: float
    tax_impact: float
    total_costs: float
    break_even_price: float
    current_price: float | None = None
    distance_to_break_even: float | None = None
    distance_percentage: float | None = None
    days_to_break_even: int | None = None
    projections: list[BreakEvenProjection] = field(default_factory=list)
    optimizations: list[Optimization] = field(default_factory=list)

    @property
    def commission_impact(self) -> float:
        return self.buy_commission + self.sell_commission


def _days_to_recover(current_price: float, break_even_price: float, annual_rate: float) -> int:
    """Days of growth at `annual_rate` needed to lift the price to break-even."""
    if current_price >= break_even_price:
        return 0
    if annual_rate <= 0 or current_price <= 0:
        return -1  # unreachable at a non-positive growth rate
    years = math.log(break_even_price / current_price) / math.log(1 + annual_rate)
    return int(math.ceil(years * 365))


def project_break_even(break_even_price: float, annual_inflation: float) -> list[BreakEvenProjection]:
    """Break-even drift under each inflation scenario, every few months for a year."""
    rows = []
    probability = round(1 / len(BREAK_EVEN_SCENARIOS), 4)
    for scenario, multiplier in BREAK_EVEN_SCENARIOS.items():
        rate = annual_inflation * multiplier
        for months in range(PROJECTION_STEP_MONTHS, PROJECTION_HORIZON_MONTHS + 1, PROJECTION_STEP_MONTHS):
            rows.append(BreakEvenProjection(
                scenario_type=scenario,
                months_ahead=months,
                inflation_rate=rate,
                projected_break_even=break_even_price * (1 + rate / 12) ** months,
                probability=probability,
            ))
    return rows


def calculate_break_even(
    *,
    quantity: float,
    purchase_price: float,
    purchase_date: date,
    config: FeeSchedule,
    buy_commission: float = 0.0,
    portfolio_value: float | None = None,
    current_price: float | None = None,
    inflation_factor: float | None = None,
    annual_inflation: float = 0.12,
    as_of: date | None = None,
) -> BreakEvenResult:
    """Break-even price for `quantity` units bought at `purchase_price`.

    `buy_commission` is the commission plus IVA actually paid on purchase.
    `inflation_factor` is UVA(now)/UVA(purchase); without it the annual
    assumption is compounded over the holding period.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero", details={"quantity": quantity})
    if purchase_price <= 0:
        raise ValidationError("purchase_price must be greater than zero",
                              details={"purchase_price": purchase_price})

    as_of = as_of or datetime.now(timezone.utc).date()
    days_held = max(0, (as_of - purchase_date).days)
    total_cost = quantity * purchase_price

    sell = commission_engine.calculate_operation_commission("SELL", total_cost, config)

    # Pro-rata share of the portfolio's custody charge while held
    value = portfolio_value if portfolio_value and portfolio_value > 0 else total_cost
    custody = commission_engine.calculate_custody_fee(value, config)
    share = min(1.0, total_cost / value) if value > 0 else 0.0
    custody_impact = custody.total_monthly_cost * share * (days_held / DAYS_PER_MONTH)

    if inflation_factor is None:
        inflation_factor = (1 + annual_inflation) ** (days_held / 365)
    inflation_impact = total_cost * max(0.0, inflation_factor - 1)

    tax_impact = total_cost * TAX_GAIN_ASSUMPTION * TAX_RATE if days_held > LONG_TERM_DAYS else 0.0

    total_costs = total_cost + buy_commission + sell.total_commission + custody_impact + inflation_impact + tax_impact
    break_even = total_costs / quantity

    result = BreakEvenResult(
        quantity=quantity,
        purchase_price=purchase_price,
        purchase_date=purchase_date,
        days_held=days_held,
        total_cost=total_cost,
        buy_commission=buy_commission,
        sell_commission=sell.total_commission,
        custody_impact=custody_impact,
        inflation_impact=inflation_impact,
        tax_impact=tax_impact,
        total_costs=total_costs,
        break_even_price=break_even,
        projections=project_break_even(break_even, annual_inflation),
    )

    if current_price is not None and current_price > 0:
        distance = current_price - break_even
        result.current_price = current_price
        result.distance_to_break_even = distance
        result.distance_percentage = distance / break_even * 100
        result.days_to_break_even = _days_to_recover(current_price, break_even, annual_inflation)

    result.optimizations = suggest_optimizations(result, config, value)
    return result


def suggest_optimizations(result: BreakEvenResult, config: FeeSchedule, portfolio_value: float) -> list[Optimization]:
    suggestions: list[Optimization] = []

    buy_fees = config.buy
    if buy_fees.percentage > 0 and result.total_cost * buy_fees.percentage < buy_fees.minimum:
        floor_amount = buy_fees.minimum / buy_fees.percentage
        proportional = result.total_cost * buy_fees.percentage * (1 + buy_fees.iva)
        suggestions.append(Optimization(
            type="COMMISSION",
            title="Minimum commission applied",
            description=(
                f"Operations below ${floor_amount:,.0f} pay the minimum fee; "
                f"grouping purchases above that amount lowers the effective commission."
            ),
            potential_savings=max(0.0, buy_fees.minimum * (1 + buy_fees.iva) - proportional),
        ))

    custody = commission_engine.calculate_custody_fee(portfolio_value, config)
    if not custody.is_exempt:
        suggestions.append(Optimization(
            type="CUSTODY",
            title="Portfolio above custody exemption",
            description=(
                f"${custody.applicable_amount:,.0f} exceeds the exempt amount and costs "
                f"${custody.total_monthly_cost:,.2f} per month in custody."
            ),
            potential_savings=custody.annual_fee,
        ))

    if result.distance_percentage is not None and result.distance_percentage < -10:
        suggestions.append(Optimization(
            type="TIMING",
            title="Far below break-even",
            description=(
                f"Price is {abs(result.distance_percentage):.1f}% under break-even; "
                f"selling now realizes the full loss plus the sell commission."
            ),
        ))

    if result.total_cost > 0 and result.inflation_impact / result.total_cost > 0.05:
        suggestions.append(Optimization(
            type="INFLATION_HEDGE",
            title="Inflation eroding the position",
            description=(
                f"Inflation adds ${result.inflation_impact:,.2f} to the break-even; "
                f"the position needs to outpace UVA to gain in real terms."
            ),
        ))
    return suggestions


def sensitivity_matrix(
    result: BreakEvenResult,
    price_changes: tuple[float, ...] = (-0.2, -0.1, 0.0, 0.1, 0.2),
    inflation_rates: tuple[float, ...] = (0.06, 0.12, 0.18),
    months: int = PROJECTION_HORIZON_MONTHS,
) -> list[dict]:
    """Profit % against the projected break-even for price and inflation shocks."""
    base_price = result.current_price or result.purchase_price
    rows = []
    for rate in inflation_rates:
        projected = result.break_even_price * (1 + rate / 12) ** months
        for change in price_changes:
            price = base_price * (1 + change)
            rows.append({
                "price_change_pct": change * 100,
                "inflation_rate": rate,
                "price": price,
                "break_even_price": projected,
                "profit_pct": (price - projected) / projected * 100,
            })
    return rows


# ---------------------------------------------------------------------------
# Repository-backed analysis
# ---------------------------------------------------------------------------

def analyze_trade(
    repo: PortfolioRepository,
    trade_id: int,
    config: FeeSchedule,
    *,
    annual_inflation: float | None = None,
    as_of: date | None = None,
    persist: bool = True,
) -> tuple[BreakEvenResult, BreakEvenAnalysis | None]:
    """Break-even for one BUY trade, optionally stored as a snapshot."""
    trade = repo.get_trade(trade_id)
    if trade is None:
        raise NotFoundError(f"Trade {trade_id} not found", details={"trade_id": trade_id})
    if trade.type != "BUY":
        raise ValidationError("Break-even analysis requires a BUY trade", details={"trade_id": trade_id})

    as_of = as_of or datetime.now(timezone.utc).date()
    if annual_inflation is None:
        annual_inflation = uva.annualized_inflation(repo, as_of)
    quote = repo.latest_quote(trade.instrument_id)

    result = calculate_break_even(
        quantity=trade.quantity,
        purchase_price=trade.price,
        purchase_date=trade.trade_date,
        config=config,
        buy_commission=trade.commission + trade.taxes,
        portfolio_value=portfolio.portfolio_value(repo),
        current_price=quote.price if quote else None,
        inflation_factor=uva.inflation_factor(repo, trade.trade_date, as_of),
        annual_inflation=annual_inflation,
        as_of=as_of,
    )

    snapshot = None
    if persist:
        with repo.transaction():
            snapshot = repo.add(BreakEvenAnalysis(
                trade_id=trade.id,
                instrument_id=trade.instrument_id,
                calculation_date=as_of,
                break_even_price=result.break_even_price,
                current_price=result.current_price,
                distance_to_break_even=result.distance_to_break_even,
                distance_percentage=result.distance_percentage,
                days_to_break_even=result.days_to_break_even,
                total_costs=result.total_costs,
                purchase_price=trade.price,
                commission_impact=result.commission_impact,
                custody_impact=result.custody_impact,
                inflation_impact=result.inflation_impact,
                tax_impact=result.tax_impact,
                projections=[asdict(p) for p in result.projections],
            ))
        logger.info(
            f"Break-even for trade {trade.id}: {result.break_even_price:.2f} "
            f"(current={result.current_price})"
        )
    return result, snapshot


def analyze_position(
    repo: PortfolioRepository,
    instrument_id: int,
    config: FeeSchedule,
    *,
    annual_inflation: float | None = None,
    as_of: date | None = None,
) -> BreakEvenResult:
    """Break-even for the whole open position of an instrument (not persisted)."""
    position = repo.get_position(instrument_id)
    if position is None or position.quantity <= 0:
        raise NotFoundError(f"No open position for instrument {instrument_id}",
                            details={"instrument_id": instrument_id})

    buys = repo.list_trades(instrument_id=instrument_id, trade_type="BUY")
    bought = sum(t.quantity for t in buys)
    paid_fees = sum(t.commission + t.taxes for t in buys)
    # Buy fees still attributable to the units held
    buy_commission = paid_fees * (position.quantity / bought) if bought else 0.0
    purchase_date = buys[0].trade_date if buys else position.created_at.date()

    as_of = as_of or datetime.now(timezone.utc).date()
    if annual_inflation is None:
        annual_inflation = uva.annualized_inflation(repo, as_of)
    quote = repo.latest_quote(instrument_id)

    return calculate_break_even(
        quantity=position.quantity,
        purchase_price=position.average_cost,
        purchase_date=purchase_date,
        config=config,
        buy_commission=buy_commission,
        portfolio_value=portfolio.portfolio_value(repo),
        current_price=quote.price if quote else None,
        inflation_factor=uva.inflation_factor(repo, purchase_date, as_of),
        annual_inflation=annual_inflation,
        as_of=as_of,
    )
