"""Trade ledger API."""

from datetime import date

from fastapi import APIRouter, Depends
from sqlmodel import select

from backend.api.deps import get_repository, ok
from backend.exceptions import NotFoundError, ValidationError
from backend.models.trade import Trade
from backend.schemas.trade import TradeCorrection, TradeCreate, TradeRead
from backend.services import commission_engine, fee_schedules
from backend.services.portfolio import record_trade, trade_net_amount
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/trades", tags=["trades"])


def _read(trade: Trade) -> dict:
    return TradeRead.model_validate(trade).model_dump()


@router.get("")
def list_trades(
    instrument_id: int | None = None,
    type: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 100,
    offset: int = 0,
    repo: SqlRepository = Depends(get_repository),
):
    stmt = select(Trade).order_by(Trade.trade_date.desc(), Trade.id.desc())
    if instrument_id is not None:
        stmt = stmt.where(Trade.instrument_id == instrument_id)
    if type is not None:
        stmt = stmt.where(Trade.type == type.upper())
    if start_date is not None:
        stmt = stmt.where(Trade.trade_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Trade.trade_date <= end_date)
    stmt = stmt.offset(offset).limit(limit)
    return ok([_read(t) for t in repo.session.exec(stmt).all()])


@router.post("", status_code=201)
def create_trade(body: TradeCreate, repo: SqlRepository = Depends(get_repository)):
    config = None
    if body.commission is None:
        config = fee_schedules.resolve_schedule(repo, body.broker)
    trade, position = record_trade(
        repo,
        instrument_id=body.instrument_id,
        trade_type=body.type,
        quantity=body.quantity,
        price=body.price,
        trade_date=body.trade_date,
        config=config,
        commission=body.commission,
        taxes=body.taxes,
        broker=body.broker,
        notes=body.notes,
    )
    return ok(
        {"trade": _read(trade), "position": position.model_dump()},
        message=f"{trade.type} recorded",
    )


@router.get("/summary")
def trade_summary(
    instrument_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    repo: SqlRepository = Depends(get_repository),
):
    """Volumes and fees of the ledger, grouped by month."""
    trades = repo.list_trades(instrument_id=instrument_id)
    analysis = commission_engine.analyze_historical_commissions(trades, start_date, end_date)
    buys = [t for t in trades if t.type == "BUY"]
    sells = [t for t in trades if t.type == "SELL"]
    return ok({
        "buy_count": len(buys),
        "sell_count": len(sells),
        "buy_volume": sum(t.total_amount for t in buys),
        "sell_volume": sum(t.total_amount for t in sells),
        "commissions": analysis,
    })


@router.get("/{trade_id}")
def get_trade(trade_id: int, repo: SqlRepository = Depends(get_repository)):
    trade = repo.get_trade(trade_id)
    if not trade:
        raise NotFoundError(f"Trade {trade_id} not found", details={"trade_id": trade_id})
    return ok(_read(trade))


@router.patch("/{trade_id}")
def correct_trade(trade_id: int, body: TradeCorrection, repo: SqlRepository = Depends(get_repository)):
    """Administrative correction of fees, date, broker or notes.

    Position accounting is not re-run; use the portfolio rebuild endpoint
    after changing a trade date.
    """
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No fields to correct")
    with repo.transaction():
        trade = repo.get_trade(trade_id)
        if not trade:
            raise NotFoundError(f"Trade {trade_id} not found", details={"trade_id": trade_id})
        for key, value in changes.items():
            setattr(trade, key, value)
        trade.net_amount = trade_net_amount(trade.type, trade.total_amount, trade.commission, trade.taxes)
        repo.add(trade)
    return ok(_read(trade), message="Trade corrected")
