"""Break-even analysis API."""

from fastapi import APIRouter, Depends
from sqlmodel import select

from backend.api.deps import get_fee_schedule, get_repository, ok
from backend.models.break_even import BreakEvenAnalysis
from backend.services import break_even
from backend.services.commission_engine import FeeSchedule
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/break-even", tags=["break-even"])


def _payload(result: break_even.BreakEvenResult) -> dict:
    return {
        "analysis": result,
        "commission_impact": result.commission_impact,
        "optimizations": result.optimizations,
    }


@router.post("/analyze/{trade_id}")
def analyze_trade(
    trade_id: int,
    persist: bool = True,
    repo: SqlRepository = Depends(get_repository),
    config: FeeSchedule = Depends(get_fee_schedule),
):
    result, snapshot = break_even.analyze_trade(repo, trade_id, config, persist=persist)
    body = _payload(result)
    body["snapshot_id"] = snapshot.id if snapshot else None
    return ok(body)


@router.get("/position/{instrument_id}")
def analyze_position(
    instrument_id: int,
    repo: SqlRepository = Depends(get_repository),
    config: FeeSchedule = Depends(get_fee_schedule),
):
    result = break_even.analyze_position(repo, instrument_id, config)
    return ok(_payload(result))


@router.get("/history/{trade_id}")
def history(trade_id: int, limit: int = 50, repo: SqlRepository = Depends(get_repository)):
    stmt = (
        select(BreakEvenAnalysis)
        .where(BreakEvenAnalysis.trade_id == trade_id)
        .order_by(BreakEvenAnalysis.created_at.desc())
        .limit(limit)
    )
    return ok(repo.session.exec(stmt).all())


@router.get("/sensitivity/{trade_id}")
def sensitivity(
    trade_id: int,
    repo: SqlRepository = Depends(get_repository),
    config: FeeSchedule = Depends(get_fee_schedule),
):
    """Profit against the projected break-even under price and inflation shocks."""
    result, _ = break_even.analyze_trade(repo, trade_id, config, persist=False)
    return ok(break_even.sensitivity_matrix(result))
