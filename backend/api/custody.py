"""Custody fee calculators and the monthly charge history."""

from fastapi import APIRouter, Depends
from sqlmodel import select

from backend.api.deps import get_fee_schedule, get_repository, ok
from backend.models.custody_fee import CustodyFee
from backend.schemas.commission import CustodyProjectionRequest, CustodyRequest, CustodyRunRequest
from backend.services import commission_engine, fee_schedules, portfolio
from backend.services.commission_engine import FeeSchedule
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/custody", tags=["custody"])


@router.post("/calculate")
def calculate(body: CustodyRequest, repo: SqlRepository = Depends(get_repository)):
    config = fee_schedules.resolve_schedule(repo, body.broker)
    return ok(commission_engine.calculate_custody_fee(body.portfolio_value, config))


@router.get("/current")
def current(repo: SqlRepository = Depends(get_repository), config: FeeSchedule = Depends(get_fee_schedule)):
    """Custody cost of the portfolio at today's market value."""
    value = portfolio.portfolio_value(repo)
    return ok(commission_engine.calculate_custody_fee(value, config))


@router.post("/projection")
def projection(body: CustodyProjectionRequest, repo: SqlRepository = Depends(get_repository)):
    config = fee_schedules.resolve_schedule(repo, body.broker)
    return ok(commission_engine.project_custody(
        body.portfolio_value, body.months, config, body.monthly_growth_pct / 100,
    ))


@router.get("/threshold")
def threshold(config: FeeSchedule = Depends(get_fee_schedule)):
    return ok(commission_engine.calculate_custody_threshold(config))


@router.get("/history")
def history(
    broker: str | None = None,
    limit: int = 24,
    repo: SqlRepository = Depends(get_repository),
):
    stmt = select(CustodyFee).order_by(CustodyFee.month.desc())
    if broker:
        stmt = stmt.where(CustodyFee.broker == broker.lower())
    return ok(repo.session.exec(stmt.limit(limit)).all())


@router.post("/run-monthly")
async def run_monthly(body: CustodyRunRequest):
    """Run the monthly custody job now (default: previous month)."""
    from backend.engine.jobs import run_custody_fee

    result = await run_custody_fee(month=body.month, dry_run=body.dry_run)
    return ok(result, message=result.get("message"))
