"""UVA index API."""

from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlmodel import select

from backend.api.deps import get_repository, ok
from backend.exceptions import NotFoundError, ValidationError
from backend.models.uva import UVA
from backend.services import uva
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/uva", tags=["uva"])


@router.get("/latest")
def latest(repo: SqlRepository = Depends(get_repository)):
    row = repo.session.exec(select(UVA).order_by(UVA.value_date.desc())).first()
    if not row:
        raise NotFoundError("No UVA values stored")
    return ok(row)


@router.get("/history")
def history(
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 365,
    repo: SqlRepository = Depends(get_repository),
):
    stmt = select(UVA).order_by(UVA.value_date.desc())
    if start_date is not None:
        stmt = stmt.where(UVA.value_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(UVA.value_date <= end_date)
    return ok(repo.session.exec(stmt.limit(limit)).all())


@router.get("/inflation-adjustment")
def inflation_adjustment(
    amount: float,
    from_date: date,
    to_date: date | None = None,
    repo: SqlRepository = Depends(get_repository),
):
    to_date = to_date or datetime.now(timezone.utc).date()
    if to_date < from_date:
        raise ValidationError("to_date must not be before from_date",
                              details={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()})
    return ok(uva.calculate_inflation_adjustment(repo, amount, from_date, to_date))


@router.post("/refresh")
async def refresh(days: int = 30, repo: SqlRepository = Depends(get_repository)):
    """Fetch the last `days` of UVA values and store them."""
    to_date = datetime.now(timezone.utc).date()
    values = await uva.fetch_uva_values(to_date - timedelta(days=days), to_date)
    stats = uva.store_uva_values(repo, values)
    return ok(stats, message=f"Stored {len(values)} UVA values")
