"""Sell-urgency scoring for open positions.

A composite 0-100 score is built from five weighted sub-scores and mapped,
together with the inflation-adjusted net profit, to a recommendation and a
risk level. Every run stores an immutable SellAnalysis row and replaces the
position's active alerts.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from backend.exceptions import NotFoundError, ValidationError
from backend.models import PortfolioPosition, SellAlert, SellAnalysis
from backend.services import commission_engine, indicators, uva
from backend.services.commission_engine import FeeSchedule
from backend.services.portfolio import QUANTITY_EPSILON
from backend.services.repository import PortfolioRepository
from backend.utils.constants import DEFAULT_SELL_THRESHOLDS, SELL_SCORE_WEIGHTS

logger = logging.getLogger(__name__)


@dataclass
class SubScores:
    technical: int
    fundamental: int
    profit: int
    time: int
    market: int

    def composite(self, weights: dict[str, float] = SELL_SCORE_WEIGHTS) -> int:
        total = (
            self.technical * weights["technical"]
            + self.fundamental * weights["fundamental"]
            + self.profit * weights["profit"]
            + self.time * weights["time"]
            + self.market * weights["market"]
        )
        return int(round(total))


@dataclass
class AlertSignal:
    alert_type: str
    priority: str
    message: str
    current_value: float
    threshold_value: float | None = None


@dataclass
class SellAnalysisResult:
    position_id: int
    instrument_id: int
    symbol: str
    quantity: float
    current_price: float
    avg_buy_price: float
    days_held: int
    gross_profit_ars: float
    gross_profit_pct: float
    net_profit_ars: float
    net_profit_pct: float
    commission_impact: float
    inflation_adjustment: float
    scores: SubScores
    sell_score: int
    recommendation: str
    recommendation_reason: str
    risk_level: str
    alerts: list[AlertSignal] = field(default_factory=list)


@dataclass
class SaleSimulation:
    quantity: float
    price: float
    gross_amount: float
    commission: float
    net_proceeds: float
    cost_basis: float
    profit: float
    profit_pct: float
    remaining_quantity: float


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------

def _clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def technical_score(snapshot: indicators.TechnicalSnapshot) -> int:
    score = 50.0
    if snapshot.rsi is not None:
        if snapshot.rsi > 70:
            score += 15  # overbought
        elif snapshot.rsi < 30:
            score -= 15  # oversold
    if snapshot.macd_signal == "SELL":
        score += 10
    elif snapshot.macd_signal == "BUY":
        score -= 5
    if snapshot.sma_trend == "DOWN":
        score += 10
    elif snapshot.sma_trend == "UP":
        score -= 5
    if snapshot.volume_signal == "HIGH":
        score += 5
    return _clamp(score)


def profit_score(net_profit_pct: float) -> int:
    if net_profit_pct > 20:
        return 90
    if net_profit_pct > 15:
        return 80
    if net_profit_pct > 10:
        return 60
    if net_profit_pct > 5:
        return 40
    if net_profit_pct > 0:
        return 20
    if net_profit_pct > -5:
        return 10
    return 0


def time_score(days_held: int) -> int:
    score = 50
    if days_held > 365:
        score += 20
    elif days_held > 180:
        score += 10
    elif days_held < 30:
        score -= 10
    return _clamp(score)


def recommend(
    net_profit_pct: float,
    sell_score: int,
    thresholds: dict[str, float] = DEFAULT_SELL_THRESHOLDS,
) -> tuple[str, str, str]:
    """Map profit and score to (recommendation, risk_level, reason)."""
    if net_profit_pct <= thresholds["stop_loss"]:
        return ("STOP_LOSS", "CRITICAL",
                f"Loss of {net_profit_pct:.1f}% reached the stop loss ({thresholds['stop_loss']}%)")

    if net_profit_pct >= thresholds["take_profit_2"]:
        if sell_score >= 70:
            return ("TAKE_PROFIT_2", "HIGH",
                    f"Profit of {net_profit_pct:.1f}% above the second target with sell score {sell_score}")
        return ("HOLD", "MEDIUM",
                f"Profit of {net_profit_pct:.1f}% above target but signals do not confirm selling")

    if net_profit_pct >= thresholds["take_profit_1"]:
        if sell_score >= 75:
            return ("TAKE_PROFIT_1", "MEDIUM",
                    f"Profit of {net_profit_pct:.1f}% above the first target with sell score {sell_score}")
        return ("HOLD", "LOW", f"Profit of {net_profit_pct:.1f}% near target, keep monitoring")

    if net_profit_pct >= thresholds["trailing_stop_trigger"] and sell_score >= 70:
        return ("TRAILING_STOP", "MEDIUM",
                f"Profit of {net_profit_pct:.1f}%: protect gains with a "
                f"{thresholds['trailing_stop_distance']}% trailing stop")

    if net_profit_pct < -3:
        return "HOLD", "HIGH", f"Loss of {net_profit_pct:.1f}% approaching the stop loss"
    if net_profit_pct < 0:
        return "HOLD", "MEDIUM", f"Small loss of {net_profit_pct:.1f}%"
    return "HOLD", "LOW", f"Profit of {net_profit_pct:.1f}% below targets"


def build_alerts(
    net_profit_pct: float,
    days_held: int,
    tech_score: int,
    thresholds: dict[str, float] = DEFAULT_SELL_THRESHOLDS,
) -> list[AlertSignal]:
    alerts: list[AlertSignal] = []
    if net_profit_pct <= thresholds["stop_loss"]:
        alerts.append(AlertSignal("STOP_LOSS", "CRITICAL",
                                  f"Stop loss reached: {net_profit_pct:.1f}%",
                                  net_profit_pct, thresholds["stop_loss"]))
    if net_profit_pct >= thresholds["take_profit_2"]:
        alerts.append(AlertSignal("TAKE_PROFIT_2", "HIGH",
                                  f"Second profit target reached: {net_profit_pct:.1f}%",
                                  net_profit_pct, thresholds["take_profit_2"]))
    elif net_profit_pct >= thresholds["take_profit_1"]:
        alerts.append(AlertSignal("TAKE_PROFIT_1", "MEDIUM",
                                  f"First profit target reached: {net_profit_pct:.1f}%",
                                  net_profit_pct, thresholds["take_profit_1"]))
    elif net_profit_pct >= thresholds["trailing_stop_trigger"]:
        alerts.append(AlertSignal("TRAILING_STOP", "MEDIUM",
                                  f"Trailing stop can be activated at {net_profit_pct:.1f}%",
                                  net_profit_pct, thresholds["trailing_stop_trigger"]))
    if days_held >= thresholds["time_based_days"] and net_profit_pct > 5:
        alerts.append(AlertSignal("TIME_BASED", "LOW",
                                  f"Held {days_held} days with {net_profit_pct:.1f}% profit",
                                  days_held, thresholds["time_based_days"]))
    if tech_score >= 80:
        alerts.append(AlertSignal("TECHNICAL", "MEDIUM",
                                  f"Technical indicators favor selling (score {tech_score})",
                                  tech_score, 80))
    return alerts


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def evaluate(
    *,
    position: PortfolioPosition,
    symbol: str,
    current_price: float,
    days_held: int,
    config: FeeSchedule,
    inflation_factor: float = 1.0,
    technical: indicators.TechnicalSnapshot | None = None,
    thresholds: dict[str, float] = DEFAULT_SELL_THRESHOLDS,
) -> SellAnalysisResult:
    """Score one position at `current_price`. Pure; nothing is stored."""
    if position.quantity <= 0:
        raise ValidationError("Position is closed", details={"position_id": position.id})
    if current_price <= 0:
        raise ValidationError("current_price must be greater than zero")

    gross_value = position.quantity * current_price
    gross_profit = gross_value - position.total_cost
    sell = commission_engine.calculate_operation_commission("SELL", gross_value, config)

    adjusted_cost = position.total_cost * inflation_factor
    net_profit = sell.net_amount - adjusted_cost
    net_pct = net_profit / adjusted_cost * 100 if adjusted_cost else 0.0

    tech = technical_score(technical or indicators.TechnicalSnapshot())
    scores = SubScores(
        technical=tech,
        fundamental=50,
        profit=profit_score(net_pct),
        time=time_score(days_held),
        market=50,
    )
    sell_score = scores.composite()
    recommendation, risk, reason = recommend(net_pct, sell_score, thresholds)

    return SellAnalysisResult(
        position_id=position.id,
        instrument_id=position.instrument_id,
        symbol=symbol,
        quantity=position.quantity,
        current_price=current_price,
        avg_buy_price=position.average_cost,
        days_held=days_held,
        gross_profit_ars=gross_profit,
        gross_profit_pct=gross_profit / position.total_cost * 100 if position.total_cost else 0.0,
        net_profit_ars=net_profit,
        net_profit_pct=net_pct,
        commission_impact=sell.total_commission,
        inflation_adjustment=adjusted_cost - position.total_cost,
        scores=scores,
        sell_score=sell_score,
        recommendation=recommendation,
        recommendation_reason=reason,
        risk_level=risk,
        alerts=build_alerts(net_pct, days_held, tech, thresholds),
    )


def _holding_start(repo: PortfolioRepository, position: PortfolioPosition) -> date:
    """Date of the first BUY of the current lot, after the last full close."""
    start = None
    held = 0.0
    for trade in repo.list_trades(instrument_id=position.instrument_id):
        if trade.type == "BUY":
            if held <= QUANTITY_EPSILON:
                start = trade.trade_date
            held += trade.quantity
        else:
            held -= trade.quantity
    return start or position.created_at.date()


def analyze_position(
    repo: PortfolioRepository,
    position_id: int,
    config: FeeSchedule,
    *,
    thresholds: dict[str, float] | None = None,
    as_of: date | None = None,
    persist: bool = True,
) -> SellAnalysisResult:
    position = repo.get_position_by_id(position_id)
    if position is None or position.quantity <= 0:
        raise NotFoundError(f"Open position {position_id} not found", details={"position_id": position_id})
    quote = repo.latest_quote(position.instrument_id)
    if quote is None:
        raise NotFoundError(f"No quote for instrument {position.instrument_id}",
                            details={"instrument_id": position.instrument_id})
    instrument = repo.get_instrument(position.instrument_id)
    symbol = instrument.symbol if instrument else str(position.instrument_id)

    as_of = as_of or datetime.now(timezone.utc).date()
    start = _holding_start(repo, position)
    factor = uva.inflation_factor(repo, start, as_of) or 1.0

    history = repo.quote_history(position.instrument_id, limit=120)
    technical = indicators.compute_snapshot(
        [q.close if q.close is not None else q.price for q in history],
        [q.volume for q in history],
    )

    result = evaluate(
        position=position,
        symbol=symbol,
        current_price=quote.price,
        days_held=max(0, (as_of - start).days),
        config=config,
        inflation_factor=factor,
        technical=technical,
        thresholds={**DEFAULT_SELL_THRESHOLDS, **(thresholds or {})},
    )

    if persist:
        _store(repo, result, as_of)
    return result


def _store(repo: PortfolioRepository, result: SellAnalysisResult, as_of: date):
    with repo.transaction():
        repo.add(SellAnalysis(
            position_id=result.position_id,
            instrument_id=result.instrument_id,
            symbol=result.symbol,
            current_price=result.current_price,
            avg_buy_price=result.avg_buy_price,
            quantity=result.quantity,
            gross_profit_pct=result.gross_profit_pct,
            net_profit_pct=result.net_profit_pct,
            gross_profit_ars=result.gross_profit_ars,
            net_profit_ars=result.net_profit_ars,
            commission_impact=result.commission_impact,
            inflation_adjustment=result.inflation_adjustment,
            sell_score=result.sell_score,
            technical_score=result.scores.technical,
            fundamental_score=result.scores.fundamental,
            profit_score=result.scores.profit,
            time_score=result.scores.time,
            market_score=result.scores.market,
            recommendation=result.recommendation,
            recommendation_reason=result.recommendation_reason,
            risk_level=result.risk_level,
            days_held=result.days_held,
            analysis_date=as_of,
        ))
        for old in repo.active_alerts(result.position_id):
            old.is_active = False
            repo.add(old)
        for alert in result.alerts:
            repo.add(SellAlert(
                position_id=result.position_id,
                instrument_id=result.instrument_id,
                alert_type=alert.alert_type,
                threshold_value=alert.threshold_value,
                current_value=alert.current_value,
                priority=alert.priority,
                message=f"{result.symbol}: {alert.message}",
            ))


def analyze_all(
    repo: PortfolioRepository,
    config: FeeSchedule,
    *,
    thresholds: dict[str, float] | None = None,
    as_of: date | None = None,
) -> tuple[list[SellAnalysisResult], list[str]]:
    """Analyze every active position. Returns (results, errors)."""
    results: list[SellAnalysisResult] = []
    errors: list[str] = []
    for position in repo.list_positions(active_only=True):
        try:
            results.append(analyze_position(repo, position.id, config, thresholds=thresholds, as_of=as_of))
        except NotFoundError as e:
            logger.warning(f"Skipping position {position.id}: {e.message}")
            errors.append(e.message)
    return results, errors


def simulate_sale(
    repo: PortfolioRepository,
    position_id: int,
    quantity: float,
    price: float,
    config: FeeSchedule,
) -> SaleSimulation:
    """What selling `quantity` at `price` would yield. Nothing is stored."""
    position = repo.get_position_by_id(position_id)
    if position is None or position.quantity <= 0:
        raise NotFoundError(f"Open position {position_id} not found", details={"position_id": position_id})
    if quantity <= 0 or quantity > position.quantity:
        raise ValidationError(
            "quantity must be positive and not exceed the held quantity",
            details={"quantity": quantity, "held": position.quantity},
        )

    gross = quantity * price
    sell = commission_engine.calculate_operation_commission("SELL", gross, config)
    cost_basis = position.average_cost * quantity
    profit = sell.net_amount - cost_basis
    return SaleSimulation(
        quantity=quantity,
        price=price,
        gross_amount=gross,
        commission=sell.total_commission,
        net_proceeds=sell.net_amount,
        cost_basis=cost_basis,
        profit=profit,
        profit_pct=profit / cost_basis * 100 if cost_basis else 0.0,
        remaining_quantity=position.quantity - quantity,
    )
