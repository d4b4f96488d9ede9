"""Stateless commission and custody fee computation.

Pure functions over explicit inputs; nothing here touches the database or
the network. The fee schedule is always passed in and callers decide which
broker configuration applies.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from backend.exceptions import NotFoundError, ValidationError
from backend.utils.constants import (
    DEFAULT_BROKER_CONFIGS,
    HIGH_INVESTMENT_BAND,
    LOW_INVESTMENT_BAND,
    TRADE_TYPES,
)


# ---------------------------------------------------------------------------
# Fee schedule
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OperationFees:
    percentage: float
    minimum: float
    iva: float


@dataclass(frozen=True)
class CustodyFees:
    exempt_amount: float
    monthly_percentage: float
    monthly_minimum: float
    iva: float


@dataclass(frozen=True)
class FeeSchedule:
    """Broker fee schedule used by every calculation in this module."""
    name: str
    broker: str
    buy: OperationFees
    sell: OperationFees
    custody: CustodyFees
    is_active: bool = True

    @classmethod
    def from_record(cls, record) -> "FeeSchedule":
        """Build from a CommissionConfig row or any object with the same fields."""
        return cls(
            name=record.name,
            broker=record.broker,
            buy=OperationFees(record.buy_percentage, record.buy_minimum, record.buy_iva),
            sell=OperationFees(record.sell_percentage, record.sell_minimum, record.sell_iva),
            custody=CustodyFees(
                record.custody_exempt_amount,
                record.custody_monthly_percentage,
                record.custody_monthly_minimum,
                record.custody_iva,
            ),
            is_active=getattr(record, "is_active", True),
        )

    @classmethod
    def from_dict(cls, values: dict) -> "FeeSchedule":
        return cls(
            name=values["name"],
            broker=values.get("broker", values["name"]),
            buy=OperationFees(values["buy_percentage"], values["buy_minimum"], values["buy_iva"]),
            sell=OperationFees(values["sell_percentage"], values["sell_minimum"], values["sell_iva"]),
            custody=CustodyFees(
                values["custody_exempt_amount"],
                values["custody_monthly_percentage"],
                values["custody_monthly_minimum"],
                values["custody_iva"],
            ),
            is_active=values.get("is_active", True),
        )

    def operation(self, operation_type: str) -> OperationFees:
        return self.buy if _normalize_type(operation_type) == "BUY" else self.sell


def default_schedule(name: str = "galicia") -> FeeSchedule:
    """Return one of the built-in broker schedules."""
    values = DEFAULT_BROKER_CONFIGS.get(name.lower())
    if values is None:
        raise NotFoundError(f"Unknown broker '{name}'", details={"broker": name})
    return FeeSchedule.from_dict(values)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class OperationCommission:
    operation_type: str
    amount: float
    base_commission: float
    iva: float
    total_commission: float
    net_amount: float
    minimum_applied: bool
    effective_percentage: float


@dataclass
class CustodyFee:
    portfolio_value: float
    applicable_amount: float
    is_exempt: bool
    monthly_fee: float
    iva: float
    total_monthly_cost: float
    annual_fee: float
    effective_annual_rate: float


@dataclass
class CommissionProjection:
    operation: OperationCommission
    custody: CustodyFee
    total_first_year_cost: float
    break_even_impact: float  # % appreciation needed to cover first-year costs


@dataclass
class BrokerComparison:
    broker: str
    name: str
    projection: CommissionProjection
    total_cost: float
    ranking: int = 0
    difference_from_best: float = 0.0


@dataclass
class MinimumInvestment:
    threshold_percentage: float
    minimum_amount: float
    commission: float
    effective_percentage: float
    recommendation: str


@dataclass
class CommissionAnalysis:
    start_date: date | None
    end_date: date | None
    trade_count: int
    total_volume: float
    total_commissions: float
    buy_commissions: float
    sell_commissions: float
    average_commission: float
    commission_percentage: float
    by_month: dict[str, dict[str, float]] = field(default_factory=dict)


@dataclass
class CommissionImpact:
    total_invested: float
    current_value: float
    total_commissions: float
    gross_return: float
    gross_return_pct: float
    net_return: float
    net_return_pct: float
    impact_pct: float  # percentage points lost to commissions


@dataclass
class CustodyThreshold:
    exempt_amount: float
    minimum_binding_until: float | None  # value where the proportional fee overtakes the minimum
    monthly_minimum_cost: float


@dataclass
class CustodyProjectionMonth:
    month: int
    portfolio_value: float
    monthly_cost: float
    cumulative_cost: float
    is_exempt: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize_type(operation_type: str) -> str:
    value = (operation_type or "").upper()
    if value not in TRADE_TYPES:
        raise ValidationError(
            f"Invalid operation type '{operation_type}'",
            details={"allowed": list(TRADE_TYPES)},
        )
    return value


def _require_positive(name: str, value: float):
    if value is None or value <= 0:
        raise ValidationError(f"{name} must be greater than zero", details={name: value})


# ---------------------------------------------------------------------------
# Core calculations
# ---------------------------------------------------------------------------

def calculate_operation_commission(
    operation_type: str,
    amount: float,
    config: FeeSchedule,
) -> OperationCommission:
    """Commission for a single BUY/SELL of `amount` ARS."""
    op_type = _normalize_type(operation_type)
    _require_positive("amount", amount)
    fees = config.operation(op_type)

    proportional = amount * fees.percentage
    base = max(proportional, fees.minimum)
    iva = base * fees.iva
    total = base + iva

    return OperationCommission(
        operation_type=op_type,
        amount=amount,
        base_commission=base,
        iva=iva,
        total_commission=total,
        net_amount=amount - total,
        minimum_applied=proportional < fees.minimum,
        effective_percentage=total / amount * 100,
    )


def calculate_custody_fee(portfolio_value: float, config: FeeSchedule) -> CustodyFee:
    """Monthly and annual custody cost for a portfolio valued at `portfolio_value`."""
    if portfolio_value is None or portfolio_value < 0:
        raise ValidationError("portfolio_value must not be negative",
                              details={"portfolio_value": portfolio_value})
    custody = config.custody
    applicable = max(0.0, portfolio_value - custody.exempt_amount)

    if applicable <= 0:
        return CustodyFee(
            portfolio_value=portfolio_value,
            applicable_amount=0.0,
            is_exempt=True,
            monthly_fee=0.0,
            iva=0.0,
            total_monthly_cost=0.0,
            annual_fee=0.0,
            effective_annual_rate=0.0,
        )

    monthly_fee = max(applicable * custody.monthly_percentage, custody.monthly_minimum)
    iva = monthly_fee * custody.iva
    total_monthly = monthly_fee * (1 + custody.iva)
    annual = total_monthly * 12

    return CustodyFee(
        portfolio_value=portfolio_value,
        applicable_amount=applicable,
        is_exempt=False,
        monthly_fee=monthly_fee,
        iva=iva,
        total_monthly_cost=total_monthly,
        annual_fee=annual,
        effective_annual_rate=annual / portfolio_value * 100,
    )


def calculate_commission_projection(
    operation_type: str,
    amount: float,
    portfolio_value: float,
    config: FeeSchedule,
) -> CommissionProjection:
    """Operation commission plus one year of custody after the operation."""
    operation = calculate_operation_commission(operation_type, amount, config)
    if operation.operation_type == "BUY":
        value_after = portfolio_value + amount
    else:
        value_after = max(0.0, portfolio_value)
    custody = calculate_custody_fee(value_after, config)

    total_first_year = operation.total_commission + custody.annual_fee
    return CommissionProjection(
        operation=operation,
        custody=custody,
        total_first_year_cost=total_first_year,
        break_even_impact=total_first_year / amount * 100,
    )


def compare_broker_commissions(
    operation_type: str,
    amount: float,
    portfolio_value: float,
    configs: list[FeeSchedule],
) -> list[BrokerComparison]:
    """Rank active schedules by first-year cost, cheapest first.

    Python's sort is stable, so equal costs keep their input order.
    """
    rows: list[BrokerComparison] = []
    for cfg in configs:
        if not cfg.is_active:
            continue
        projection = calculate_commission_projection(operation_type, amount, portfolio_value, cfg)
        rows.append(BrokerComparison(
            broker=cfg.broker,
            name=cfg.name,
            projection=projection,
            total_cost=projection.total_first_year_cost,
        ))
    rows.sort(key=lambda r: r.total_cost)
    if rows:
        best = rows[0].total_cost
        for i, row in enumerate(rows, start=1):
            row.ranking = i
            row.difference_from_best = row.total_cost - best
    return rows


def calculate_minimum_investment_for_threshold(
    threshold_percentage: float,
    config: FeeSchedule,
    operation_type: str = "BUY",
) -> MinimumInvestment:
    """Smallest amount whose effective commission is at most `threshold_percentage` %."""
    _require_positive("threshold_percentage", threshold_percentage)
    fees = config.operation(operation_type)
    threshold = threshold_percentage / 100

    # Above the floor the effective rate converges to percentage * (1 + iva)
    proportional_rate = fees.percentage * (1 + fees.iva)
    if proportional_rate > threshold:
        raise ValidationError(
            f"No amount reaches {threshold_percentage}%: proportional commission "
            f"is already {proportional_rate * 100:.3f}%",
            details={"threshold_percentage": threshold_percentage,
                     "proportional_percentage": proportional_rate * 100},
        )

    minimum_fee = fees.minimum * (1 + fees.iva)
    minimum_amount = minimum_fee / threshold
    commission = calculate_operation_commission(operation_type, minimum_amount, config)

    if minimum_amount < LOW_INVESTMENT_BAND:
        recommendation = "Low minimum: small operations are already cost-efficient"
    elif minimum_amount > HIGH_INVESTMENT_BAND:
        recommendation = "High minimum: consider a broker with a lower minimum fee"
    else:
        recommendation = "Reasonable minimum for regular operations"

    return MinimumInvestment(
        threshold_percentage=threshold_percentage,
        minimum_amount=minimum_amount,
        commission=commission.total_commission,
        effective_percentage=commission.effective_percentage,
        recommendation=recommendation,
    )


# ---------------------------------------------------------------------------
# Historical analysis
# ---------------------------------------------------------------------------

def analyze_historical_commissions(
    trades: list,
    start_date: date | None = None,
    end_date: date | None = None,
) -> CommissionAnalysis:
    """Aggregate commissions paid over a trade ledger.

    `trades` are Trade rows (or anything with type, trade_date, total_amount,
    commission and taxes); commission paid is commission + taxes.
    """
    selected = [
        t for t in trades
        if (start_date is None or t.trade_date >= start_date)
        and (end_date is None or t.trade_date <= end_date)
    ]

    by_month: dict[str, dict[str, float]] = defaultdict(
        lambda: {"trades": 0, "volume": 0.0, "commissions": 0.0}
    )
    buy_total = sell_total = volume = 0.0
    for t in selected:
        paid = t.commission + t.taxes
        volume += t.total_amount
        if t.type == "BUY":
            buy_total += paid
        else:
            sell_total += paid
        bucket = by_month[t.trade_date.strftime("%Y-%m")]
        bucket["trades"] += 1
        bucket["volume"] += t.total_amount
        bucket["commissions"] += paid

    total = buy_total + sell_total
    return CommissionAnalysis(
        start_date=start_date,
        end_date=end_date,
        trade_count=len(selected),
        total_volume=volume,
        total_commissions=total,
        buy_commissions=buy_total,
        sell_commissions=sell_total,
        average_commission=total / len(selected) if selected else 0.0,
        commission_percentage=total / volume * 100 if volume else 0.0,
        by_month=dict(sorted(by_month.items())),
    )


def calculate_commission_impact_on_returns(trades: list, current_value: float) -> CommissionImpact:
    """Gross vs. net return of a ledger valued at `current_value` today."""
    invested = sum(t.total_amount for t in trades if t.type == "BUY")
    proceeds = sum(t.total_amount for t in trades if t.type == "SELL")
    commissions = sum(t.commission + t.taxes for t in trades)

    gross = current_value + proceeds - invested
    net = gross - commissions
    gross_pct = gross / invested * 100 if invested else 0.0
    net_pct = net / invested * 100 if invested else 0.0

    return CommissionImpact(
        total_invested=invested,
        current_value=current_value,
        total_commissions=commissions,
        gross_return=gross,
        gross_return_pct=gross_pct,
        net_return=net,
        net_return_pct=net_pct,
        impact_pct=gross_pct - net_pct,
    )


# ---------------------------------------------------------------------------
# Custody helpers
# ---------------------------------------------------------------------------

def calculate_custody_threshold(config: FeeSchedule) -> CustodyThreshold:
    custody = config.custody
    if custody.monthly_percentage > 0:
        binding_until = custody.exempt_amount + custody.monthly_minimum / custody.monthly_percentage
    else:
        binding_until = None
    return CustodyThreshold(
        exempt_amount=custody.exempt_amount,
        minimum_binding_until=binding_until,
        monthly_minimum_cost=custody.monthly_minimum * (1 + custody.iva),
    )


def project_custody(
    portfolio_value: float,
    months: int,
    config: FeeSchedule,
    monthly_growth: float = 0.0,
) -> list[CustodyProjectionMonth]:
    """Month-by-month custody cost for a portfolio growing by `monthly_growth` (fraction)."""
    if months <= 0:
        raise ValidationError("months must be greater than zero", details={"months": months})

    rows: list[CustodyProjectionMonth] = []
    value = portfolio_value
    cumulative = 0.0
    for month in range(1, months + 1):
        fee = calculate_custody_fee(value, config)
        cumulative += fee.total_monthly_cost
        rows.append(CustodyProjectionMonth(
            month=month,
            portfolio_value=value,
            monthly_cost=fee.total_monthly_cost,
            cumulative_cost=cumulative,
            is_exempt=fee.is_exempt,
        ))
        value *= 1 + monthly_growth
    return rows
