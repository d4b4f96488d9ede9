"""Quote API: latest prices, history, manual upsert and refresh."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from backend.api.deps import get_repository, ok
from backend.exceptions import NotFoundError
from backend.schemas.commission import QuoteUpsert
from backend.services import quotes
from backend.services.repository import SqlRepository

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


@router.get("/latest")
def latest_quotes(repo: SqlRepository = Depends(get_repository)):
    instruments = repo.list_instruments(active_only=True)
    latest = repo.latest_quotes([i.id for i in instruments])
    return ok([
        {"instrument_id": i.id, "symbol": i.symbol, "quote": latest.get(i.id)}
        for i in instruments
    ])


@router.get("/history/{instrument_id}")
def quote_history(instrument_id: int, limit: int = 100, repo: SqlRepository = Depends(get_repository)):
    if not repo.get_instrument(instrument_id):
        raise NotFoundError(f"Instrument {instrument_id} not found", details={"instrument_id": instrument_id})
    return ok(repo.quote_history(instrument_id, limit=limit))


@router.post("")
def upsert_quote(body: QuoteUpsert, repo: SqlRepository = Depends(get_repository)):
    """Store a manual quote; a second quote for the same day replaces it."""
    instrument = repo.get_instrument(body.instrument_id)
    if not instrument:
        raise NotFoundError(f"Instrument {body.instrument_id} not found",
                            details={"instrument_id": body.instrument_id})
    with repo.transaction():
        data = quotes.QuoteData(
            symbol=instrument.symbol,
            price=body.price,
            quote_date=body.quote_date or datetime.now(timezone.utc).date(),
            volume=body.volume,
            high=body.high,
            low=body.low,
            close=body.close,
            source="manual",
        )
        quote = quotes.upsert_quote(repo, body.instrument_id, data)
    return ok(quote)


@router.post("/refresh")
async def refresh(repo: SqlRepository = Depends(get_repository)):
    """Fetch quotes for every active instrument now, ignoring market hours."""
    results = await quotes.refresh_quotes(repo)
    updated = sum(1 for r in results if r.success)
    return ok(results, message=f"Updated {updated}/{len(results)} quotes")
