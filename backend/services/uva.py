"""UVA (inflation-indexed unit) values: fetching, storage and adjustments."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import httpx

from backend.config import settings
from backend.exceptions import NotFoundError, UpstreamError, ValidationError
from backend.models import UVA
from backend.services.repository import PortfolioRepository

logger = logging.getLogger(__name__)


@dataclass
class UVAValue:
    value_date: date
    value: float
    source: str = "estadisticas"


@dataclass
class InflationAdjustment:
    original_amount: float
    adjusted_amount: float
    from_date: date
    to_date: date
    from_value: float
    to_value: float
    factor: float
    inflation_pct: float


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def _parse_date(raw: str) -> date:
    return datetime.fromisoformat(str(raw)[:10]).date()


def parse_uva_payload(payload) -> list[UVAValue]:
    """Parse the estadisticasbcra response: a list of {"d": date, "v": value}.

    Rows with missing or non-positive values are dropped. Output is sorted
    by date.
    """
    if not isinstance(payload, list):
        raise UpstreamError("Unexpected UVA payload", details={"type": type(payload).__name__})

    values: list[UVAValue] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        raw_value = item.get("v", item.get("valor", item.get("value")))
        raw_date = item.get("d", item.get("fecha", item.get("date")))
        try:
            value = float(raw_value)
            value_date = _parse_date(raw_date)
        except (TypeError, ValueError):
            continue
        if value > 0:
            values.append(UVAValue(value_date=value_date, value=value))
    return sorted(values, key=lambda v: v.value_date)


def _headers() -> dict[str, str]:
    if settings.uva_api_token:
        return {"Authorization": f"BEARER {settings.uva_api_token}"}
    return {}


async def fetch_uva_values(
    from_date: date | None = None,
    to_date: date | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[UVAValue]:
    """Fetch UVA values from the statistics API, optionally for a date range."""
    params = {}
    if from_date:
        params["desde"] = from_date.isoformat()
    if to_date:
        params["hasta"] = to_date.isoformat()

    own_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.uva_request_timeout)
    try:
        resp = await client.get(settings.uva_api_url, params=params, headers=_headers())
        resp.raise_for_status()
        values = parse_uva_payload(resp.json())
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"UVA API request failed: {e}")
        raise UpstreamError("UVA API request failed", details={"error": str(e)}) from e
    finally:
        if own_client:
            await client.aclose()

    if from_date or to_date:
        values = [
            v for v in values
            if (from_date is None or v.value_date >= from_date)
            and (to_date is None or v.value_date <= to_date)
        ]
    logger.info(f"Fetched {len(values)} UVA values")
    return values


async def fetch_latest_uva(client: httpx.AsyncClient | None = None) -> UVAValue:
    values = await fetch_uva_values(client=client)
    if not values:
        raise UpstreamError("UVA API returned no values")
    return values[-1]


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def upsert_uva(repo: PortfolioRepository, item: UVAValue) -> tuple[UVA, bool]:
    """Insert or update the value for a date. Returns (row, created)."""
    if item.value <= 0:
        raise ValidationError("UVA value must be greater than zero", details={"value": item.value})
    row = repo.get_uva(item.value_date)
    created = row is None
    if created:
        row = UVA(value_date=item.value_date, value=item.value, source=item.source)
    else:
        row.value = item.value
        row.source = item.source
    return repo.add(row), created


def store_uva_values(repo: PortfolioRepository, values: list[UVAValue]) -> dict[str, int]:
    """Upsert a batch in one transaction."""
    stats = {"created": 0, "updated": 0}
    with repo.transaction():
        for item in values:
            _, created = upsert_uva(repo, item)
            stats["created" if created else "updated"] += 1
    return stats


# ---------------------------------------------------------------------------
# Inflation adjustment
# ---------------------------------------------------------------------------

def inflation_factor(repo: PortfolioRepository, from_date: date, to_date: date) -> float | None:
    """UVA(to) / UVA(from) using the closest values on or before each date."""
    start = repo.uva_on_or_before(from_date)
    end = repo.uva_on_or_before(to_date)
    if start is None or end is None or start.value <= 0:
        return None
    return end.value / start.value


def calculate_inflation_adjustment(
    repo: PortfolioRepository,
    amount: float,
    from_date: date,
    to_date: date,
) -> InflationAdjustment:
    start = repo.uva_on_or_before(from_date)
    end = repo.uva_on_or_before(to_date)
    if start is None or end is None:
        raise NotFoundError(
            "UVA values not available for the requested dates",
            details={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
        )
    factor = end.value / start.value
    return InflationAdjustment(
        original_amount=amount,
        adjusted_amount=amount * factor,
        from_date=from_date,
        to_date=to_date,
        from_value=start.value,
        to_value=end.value,
        factor=factor,
        inflation_pct=(factor - 1) * 100,
    )


def annualized_inflation(repo: PortfolioRepository, as_of: date | None = None) -> float:
    """Inflation over the trailing year as a fraction, or the configured fallback."""
    as_of = as_of or datetime.now(timezone.utc).date()
    factor = inflation_factor(repo, as_of - timedelta(days=365), as_of)
    if factor is None or factor == 1.0:
        return settings.annual_inflation_rate
    return factor - 1
