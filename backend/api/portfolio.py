"""Portfolio positions and market-value view."""

from fastapi import APIRouter, Depends

from backend.api.deps import get_repository, ok
from backend.exceptions import NotFoundError
from backend.services import portfolio
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


@router.get("/positions")
def list_positions(include_closed: bool = False, repo: SqlRepository = Depends(get_repository)):
    if include_closed:
        return ok(repo.list_positions(active_only=False))
    return ok(portfolio.build_summary(repo).positions)


@router.get("/positions/{instrument_id}")
def get_position(instrument_id: int, repo: SqlRepository = Depends(get_repository)):
    position = repo.get_position(instrument_id)
    if not position:
        raise NotFoundError(f"No position for instrument {instrument_id}",
                            details={"instrument_id": instrument_id})
    quote = repo.latest_quote(instrument_id)
    return ok({
        "position": position,
        "latest_quote": quote,
        "trades": repo.list_trades(instrument_id=instrument_id),
    })


@router.get("/summary")
def summary(repo: SqlRepository = Depends(get_repository)):
    return ok(portfolio.build_summary(repo))


@router.post("/rebuild/{instrument_id}")
def rebuild(instrument_id: int, repo: SqlRepository = Depends(get_repository)):
    """Recompute a position from its trade ledger."""
    position = portfolio.rebuild_position(repo, instrument_id)
    return ok(position, message=f"Position for instrument {instrument_id} rebuilt")
