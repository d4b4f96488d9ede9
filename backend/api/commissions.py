"""Broker commission configs and calculators."""

from datetime import date

from fastapi import APIRouter, Depends

from backend.api.deps import get_fee_schedule, get_repository, ok
from backend.exceptions import ValidationError
from backend.models.commission_config import CommissionConfig
from backend.schemas.commission import (
    CommissionConfigCreate,
    MinimumInvestmentRequest,
    OperationRequest,
    ProjectionRequest,
)
from backend.services import commission_engine, fee_schedules, portfolio
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/commissions", tags=["commissions"])


@router.get("/configs")
def list_configs(repo: SqlRepository = Depends(get_repository)):
    return ok(repo.list_commission_configs())


@router.post("/configs", status_code=201)
def create_config(body: CommissionConfigCreate, repo: SqlRepository = Depends(get_repository)):
    if repo.get_commission_config(body.name):
        raise ValidationError(f"Commission config '{body.name}' already exists", details={"name": body.name})
    with repo.transaction():
        record = repo.add(CommissionConfig(**body.model_dump(exclude={"is_active"})))
        if body.is_active:
            repo.activate_commission_config(record.name)
    return ok(record, message=f"Commission config '{record.name}' created")


@router.post("/configs/{name}/activate")
def activate_config(name: str, repo: SqlRepository = Depends(get_repository)):
    record = fee_schedules.activate(repo, name)
    return ok(record, message=f"'{record.name}' is now the default config")


@router.post("/calculate")
def calculate(body: OperationRequest, repo: SqlRepository = Depends(get_repository)):
    config = fee_schedules.resolve_schedule(repo, body.broker)
    return ok(commission_engine.calculate_operation_commission(body.type, body.amount, config))


@router.post("/projection")
def projection(body: ProjectionRequest, repo: SqlRepository = Depends(get_repository)):
    config = fee_schedules.resolve_schedule(repo, body.broker)
    return ok(commission_engine.calculate_commission_projection(
        body.type, body.amount, body.portfolio_value, config,
    ))


@router.post("/compare")
def compare(body: ProjectionRequest, repo: SqlRepository = Depends(get_repository)):
    """Rank every known broker by first-year cost of the operation."""
    configs = fee_schedules.all_schedules(repo)
    return ok(commission_engine.compare_broker_commissions(
        body.type, body.amount, body.portfolio_value, configs,
    ))


@router.post("/minimum-investment")
def minimum_investment(body: MinimumInvestmentRequest, repo: SqlRepository = Depends(get_repository)):
    config = fee_schedules.resolve_schedule(repo, body.broker)
    return ok(commission_engine.calculate_minimum_investment_for_threshold(
        body.threshold_percentage, config, body.type,
    ))


@router.get("/analysis")
def analysis(
    start_date: date | None = None,
    end_date: date | None = None,
    repo: SqlRepository = Depends(get_repository),
):
    """Commissions actually paid over the trade ledger."""
    return ok(commission_engine.analyze_historical_commissions(repo.list_trades(), start_date, end_date))


@router.get("/impact")
def impact(repo: SqlRepository = Depends(get_repository)):
    """Gross vs. net return of the ledger at today's market value."""
    value = portfolio.portfolio_value(repo)
    return ok(commission_engine.calculate_commission_impact_on_returns(repo.list_trades(), value))


@router.get("/schedule")
def current_schedule(config: commission_engine.FeeSchedule = Depends(get_fee_schedule)):
    """The fee schedule used when no broker is given (or the `broker` query one)."""
    return ok(config)
