"""Sell recommendation API."""

from fastapi import APIRouter, Depends
from sqlmodel import select

from backend.api.deps import get_fee_schedule, get_repository, ok
from backend.exceptions import NotFoundError
from backend.models.sell_analysis import SellAlert, SellAnalysis
from backend.schemas.commission import SellSimulationRequest
from backend.services import fee_schedules, sell_analysis
from backend.services.commission_engine import FeeSchedule
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/sell-analysis", tags=["sell-analysis"])


@router.post("/analyze")
def analyze_all(
    repo: SqlRepository = Depends(get_repository),
    config: FeeSchedule = Depends(get_fee_schedule),
):
    results, errors = sell_analysis.analyze_all(repo, config)
    return ok({"results": results, "errors": errors},
              message=f"Analyzed {len(results)} positions")


@router.post("/analyze/{position_id}")
def analyze_position(
    position_id: int,
    persist: bool = True,
    repo: SqlRepository = Depends(get_repository),
    config: FeeSchedule = Depends(get_fee_schedule),
):
    return ok(sell_analysis.analyze_position(repo, position_id, config, persist=persist))


@router.get("/history")
def history(
    position_id: int | None = None,
    recommendation: str | None = None,
    limit: int = 50,
    offset: int = 0,
    repo: SqlRepository = Depends(get_repository),
):
    stmt = select(SellAnalysis).order_by(SellAnalysis.created_at.desc(), SellAnalysis.id.desc())
    if position_id is not None:
        stmt = stmt.where(SellAnalysis.position_id == position_id)
    if recommendation is not None:
        stmt = stmt.where(SellAnalysis.recommendation == recommendation.upper())
    return ok(repo.session.exec(stmt.offset(offset).limit(limit)).all())


@router.get("/alerts")
def alerts(
    active_only: bool = True,
    unread_only: bool = False,
    repo: SqlRepository = Depends(get_repository),
):
    stmt = select(SellAlert).order_by(SellAlert.created_at.desc(), SellAlert.id.desc())
    if active_only:
        stmt = stmt.where(SellAlert.is_active == True)  # noqa: E712
    if unread_only:
        stmt = stmt.where(SellAlert.is_read == False)  # noqa: E712
    return ok(repo.session.exec(stmt).all())


@router.post("/alerts/{alert_id}/read")
def mark_read(alert_id: int, repo: SqlRepository = Depends(get_repository)):
    with repo.transaction():
        alert = repo.session.get(SellAlert, alert_id)
        if not alert:
            raise NotFoundError(f"Alert {alert_id} not found", details={"alert_id": alert_id})
        alert.is_read = True
        repo.add(alert)
    return ok(alert)


@router.post("/simulate")
def simulate(body: SellSimulationRequest, repo: SqlRepository = Depends(get_repository)):
    config = fee_schedules.resolve_schedule(repo, body.broker)
    return ok(sell_analysis.simulate_sale(repo, body.position_id, body.quantity, body.price, config))
