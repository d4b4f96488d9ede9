"""Instrument catalogue API."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlmodel import select

from backend.api.deps import get_repository, ok
from backend.exceptions import NotFoundError, ValidationError
from backend.models.instrument import Instrument
from backend.schemas.instrument import InstrumentCreate, InstrumentRead, InstrumentUpdate
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/instruments", tags=["instruments"])


def _get_or_404(repo: SqlRepository, instrument_id: int) -> Instrument:
    instrument = repo.get_instrument(instrument_id)
    if not instrument:
        raise NotFoundError(f"Instrument {instrument_id} not found", details={"instrument_id": instrument_id})
    return instrument


def _read(instrument: Instrument) -> dict:
    return InstrumentRead.model_validate(instrument).model_dump()


def _save(repo: SqlRepository, instrument: Instrument) -> dict:
    instrument.updated_at = datetime.now(timezone.utc)
    with repo.transaction():
        repo.add(instrument)
    repo.session.refresh(instrument)
    return _read(instrument)


@router.get("")
def list_instruments(
    active: bool | None = True,
    esg: bool | None = None,
    vegan: bool | None = None,
    sector: str | None = None,
    search: str | None = None,
    repo: SqlRepository = Depends(get_repository),
):
    stmt = select(Instrument).order_by(Instrument.symbol)
    if active is not None:
        stmt = stmt.where(Instrument.is_active == active)
    if esg is not None:
        stmt = stmt.where(Instrument.is_esg_compliant == esg)
    if vegan is not None:
        stmt = stmt.where(Instrument.is_vegan_friendly == vegan)
    if sector:
        stmt = stmt.where(Instrument.sector == sector)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Instrument.symbol.ilike(pattern), Instrument.company_name.ilike(pattern)))
    return ok([_read(r) for r in repo.session.exec(stmt).all()])


@router.post("", status_code=201)
def create_instrument(body: InstrumentCreate, repo: SqlRepository = Depends(get_repository)):
    existing = repo.session.exec(select(Instrument).where(Instrument.symbol == body.symbol)).first()
    if existing:
        raise ValidationError(f"Instrument '{body.symbol}' already exists", details={"symbol": body.symbol})
    instrument = Instrument(**body.model_dump())
    return ok(_save(repo, instrument), message=f"Instrument {instrument.symbol} created")


@router.get("/{instrument_id}")
def get_instrument(instrument_id: int, repo: SqlRepository = Depends(get_repository)):
    return ok(_read(_get_or_404(repo, instrument_id)))


@router.put("/{instrument_id}")
def update_instrument(instrument_id: int, body: InstrumentUpdate, repo: SqlRepository = Depends(get_repository)):
    instrument = _get_or_404(repo, instrument_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(instrument, key, value)
    return ok(_save(repo, instrument))


@router.post("/{instrument_id}/toggle-esg")
def toggle_esg(instrument_id: int, repo: SqlRepository = Depends(get_repository)):
    instrument = _get_or_404(repo, instrument_id)
    instrument.is_esg_compliant = not instrument.is_esg_compliant
    return ok(_save(repo, instrument))


@router.post("/{instrument_id}/toggle-vegan")
def toggle_vegan(instrument_id: int, repo: SqlRepository = Depends(get_repository)):
    instrument = _get_or_404(repo, instrument_id)
    instrument.is_vegan_friendly = not instrument.is_vegan_friendly
    return ok(_save(repo, instrument))


@router.delete("/{instrument_id}")
def delete_instrument(instrument_id: int, repo: SqlRepository = Depends(get_repository)):
    """Soft delete: the instrument is deactivated, its trades stay intact."""
    instrument = _get_or_404(repo, instrument_id)
    instrument.is_active = False
    return ok(_save(repo, instrument), message=f"Instrument {instrument.symbol} deactivated")
