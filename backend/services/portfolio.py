"""Portfolio position aggregation.

Keeps one PortfolioPosition row per instrument consistent with the trade
ledger using weighted-average-cost accounting. Cost basis is quantity x
price; commission and taxes are tracked on the trade only.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from backend.exceptions import InsufficientQuantity, NotFoundError, ValidationError
from backend.models import PortfolioPosition, Trade
from backend.services import commission_engine
from backend.services.commission_engine import FeeSchedule
from backend.services.repository import PortfolioRepository

logger = logging.getLogger(__name__)

QUANTITY_EPSILON = 1e-9


@dataclass
class PositionValuation:
    position_id: int
    instrument_id: int
    symbol: str | None
    quantity: float
    average_cost: float
    total_cost: float
    current_price: float | None
    quote_date: date | None
    market_value: float
    unrealized_pnl: float
    unrealized_pnl_pct: float
    weight_pct: float = 0.0


@dataclass
class PortfolioSummary:
    total_cost: float
    market_value: float
    unrealized_pnl: float
    unrealized_pnl_pct: float
    position_count: int
    positions: list[PositionValuation] = field(default_factory=list)


def apply_trade(
    position: PortfolioPosition | None,
    instrument_id: int,
    trade_type: str,
    quantity: float,
    price: float,
) -> PortfolioPosition:
    """Apply one trade to a position in place (or create it) and return it.

    Raises InsufficientQuantity before touching the position when a SELL
    exceeds the held quantity.
    """
    now = datetime.now(timezone.utc)

    if trade_type == "BUY":
        if position is None:
            return PortfolioPosition(
                instrument_id=instrument_id,
                quantity=quantity,
                average_cost=price,
                total_cost=quantity * price,
            )
        position.total_cost += quantity * price
        position.quantity += quantity
        position.average_cost = position.total_cost / position.quantity
        position.updated_at = now
        return position

    held = position.quantity if position is not None else 0.0
    if position is None or quantity > held + QUANTITY_EPSILON:
        raise InsufficientQuantity(instrument_id, held, quantity)

    position.total_cost -= position.average_cost * quantity
    position.quantity -= quantity
    if position.quantity <= QUANTITY_EPSILON:
        # Closed: the row stays for history, average_cost is kept but meaningless
        position.quantity = 0.0
        position.total_cost = 0.0
    position.updated_at = now
    return position


def trade_net_amount(trade_type: str, total_amount: float, commission: float, taxes: float) -> float:
    """Cash paid for a BUY, cash received for a SELL."""
    fees = commission + taxes
    return total_amount + fees if trade_type == "BUY" else total_amount - fees


def record_trade(
    repo: PortfolioRepository,
    *,
    instrument_id: int,
    trade_type: str,
    quantity: float,
    price: float,
    trade_date: date,
    config: FeeSchedule | None = None,
    commission: float | None = None,
    taxes: float | None = None,
    broker: str | None = None,
    notes: str | None = None,
) -> tuple[Trade, PortfolioPosition]:
    """Insert a trade and update its position in a single transaction.

    When `commission` is omitted it is computed from `config` (base
    commission) with the IVA stored as `taxes`.
    """
    trade_type = (trade_type or "").upper()
    if trade_type not in ("BUY", "SELL"):
        raise ValidationError(f"Invalid trade type '{trade_type}'")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be greater than zero", details={"quantity": quantity})
    if price is None or price <= 0:
        raise ValidationError("price must be greater than zero", details={"price": price})

    total_amount = quantity * price
    if commission is None:
        if config is None:
            raise ValidationError("A commission config is required when commission is not given")
        fees = commission_engine.calculate_operation_commission(trade_type, total_amount, config)
        commission, taxes = fees.base_commission, fees.iva
        broker = broker or config.name
    taxes = taxes or 0.0

    with repo.transaction():
        instrument = repo.get_instrument(instrument_id)
        if instrument is None:
            raise NotFoundError(f"Instrument {instrument_id} not found",
                                details={"instrument_id": instrument_id})

        position = repo.get_position(instrument_id)
        position = apply_trade(position, instrument_id, trade_type, quantity, price)

        trade = repo.add(Trade(
            instrument_id=instrument_id,
            type=trade_type,
            quantity=quantity,
            price=price,
            total_amount=total_amount,
            commission=commission,
            taxes=taxes,
            net_amount=trade_net_amount(trade_type, total_amount, commission, taxes),
            trade_date=trade_date,
            broker=broker,
            notes=notes,
        ))
        position = repo.add(position)

    logger.info(
        f"{trade_type} {quantity:g} {instrument.symbol} @ {price:.2f} -> "
        f"qty={position.quantity:g} avg={position.average_cost:.4f}"
    )
    return trade, position


def rebuild_position(repo: PortfolioRepository, instrument_id: int) -> PortfolioPosition:
    """Recompute a position from the full trade ledger in date order."""
    with repo.transaction():
        trades = repo.list_trades(instrument_id=instrument_id)
        existing = repo.get_position(instrument_id)
        if existing is None and not trades:
            raise NotFoundError(f"No trades for instrument {instrument_id}",
                                details={"instrument_id": instrument_id})

        replayed: PortfolioPosition | None = None
        for trade in trades:
            replayed = apply_trade(replayed, instrument_id, trade.type, trade.quantity, trade.price)

        position = existing or PortfolioPosition(instrument_id=instrument_id)
        position.quantity = replayed.quantity if replayed else 0.0
        position.average_cost = replayed.average_cost if replayed else 0.0
        position.total_cost = replayed.total_cost if replayed else 0.0
        position.updated_at = datetime.now(timezone.utc)
        position = repo.add(position)

    logger.info(f"Rebuilt position for instrument {instrument_id} from {len(trades)} trades")
    return position


def portfolio_value(repo: PortfolioRepository) -> float:
    """Market value of all active positions, at cost where no quote exists."""
    return build_summary(repo).market_value


def build_summary(repo: PortfolioRepository) -> PortfolioSummary:
    """Join active positions with their latest quote."""
    positions = repo.list_positions(active_only=True)
    quotes = repo.latest_quotes([p.instrument_id for p in positions])

    rows: list[PositionValuation] = []
    for pos in positions:
        instrument = repo.get_instrument(pos.instrument_id)
        quote = quotes.get(pos.instrument_id)
        price = quote.price if quote else None
        market_value = pos.quantity * price if price is not None else pos.total_cost
        pnl = market_value - pos.total_cost
        rows.append(PositionValuation(
            position_id=pos.id,
            instrument_id=pos.instrument_id,
            symbol=instrument.symbol if instrument else None,
            quantity=pos.quantity,
            average_cost=pos.average_cost,
            total_cost=pos.total_cost,
            current_price=price,
            quote_date=quote.quote_date if quote else None,
            market_value=market_value,
            unrealized_pnl=pnl,
            unrealized_pnl_pct=pnl / pos.total_cost * 100 if pos.total_cost else 0.0,
        ))

    total_cost = sum(r.total_cost for r in rows)
    total_value = sum(r.market_value for r in rows)
    for r in rows:
        r.weight_pct = r.market_value / total_value * 100 if total_value else 0.0

    total_pnl = total_value - total_cost
    return PortfolioSummary(
        total_cost=total_cost,
        market_value=total_value,
        unrealized_pnl=total_pnl,
        unrealized_pnl_pct=total_pnl / total_cost * 100 if total_cost else 0.0,
        position_count=len(rows),
        positions=rows,
    )
