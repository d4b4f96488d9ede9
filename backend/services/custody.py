"""Monthly custody fee charging."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from backend.models import CustodyFee
from backend.services import commission_engine, portfolio
from backend.services.commission_engine import FeeSchedule
from backend.services.repository import PortfolioRepository

logger = logging.getLogger(__name__)


@dataclass
class CustodyRun:
    month: date
    broker: str
    status: str  # "charged", "exempt", "skipped", "dry_run"
    portfolio_value: float
    fee: commission_engine.CustodyFee | None = None
    record: CustodyFee | None = None


def previous_month(today: date) -> date:
    """First day of the month before `today`."""
    return (today.replace(day=1) - timedelta(days=1)).replace(day=1)


def charge_monthly_custody(
    repo: PortfolioRepository,
    config: FeeSchedule,
    month: date,
    *,
    portfolio_value: float | None = None,
    dry_run: bool = False,
) -> CustodyRun:
    """Store the custody charge for `month` unless it was already stored.

    Exempt months are stored too (with zero amounts) so the month counts as
    processed.
    """
    month = month.replace(day=1)
    if portfolio_value is None:
        portfolio_value = portfolio.portfolio_value(repo)

    existing = repo.custody_fee_for(month, config.name)
    if existing is not None:
        logger.info(f"Custody for {month:%Y-%m} ({config.name}) already recorded, skipping")
        return CustodyRun(month, config.name, "skipped", portfolio_value, record=existing)

    fee = commission_engine.calculate_custody_fee(portfolio_value, config)
    if dry_run:
        logger.info(
            f"[dry run] Custody {month:%Y-%m} ({config.name}): "
            f"value={portfolio_value:,.2f} total={fee.total_monthly_cost:,.2f}"
        )
        return CustodyRun(month, config.name, "dry_run", portfolio_value, fee=fee)

    with repo.transaction():
        record = repo.add(CustodyFee(
            month=month,
            broker=config.name,
            portfolio_value=portfolio_value,
            applicable_amount=fee.applicable_amount,
            fee_percentage=0.0 if fee.is_exempt else config.custody.monthly_percentage,
            fee_amount=fee.monthly_fee,
            iva_amount=fee.iva,
            total_charged=fee.total_monthly_cost,
            is_exempt=fee.is_exempt,
        ))

    status = "exempt" if fee.is_exempt else "charged"
    logger.info(
        f"Custody {month:%Y-%m} ({config.name}) {status}: "
        f"value={portfolio_value:,.2f} total={fee.total_monthly_cost:,.2f}"
    )
    return CustodyRun(month, config.name, status, portfolio_value, fee=fee, record=record)
