"""Quote fetching and storage.

Prices come from Yahoo Finance via yfinance. CEDEARs trade on BYMA, so the
Yahoo ticker is the local symbol plus the configured suffix (e.g. AAPL.BA).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pandas as pd
import yfinance as yf

from backend.config import settings
from backend.exceptions import NotFoundError, ValidationError
from backend.models import Instrument, Quote
from backend.services.repository import PortfolioRepository

logger = logging.getLogger(__name__)


@dataclass
class QuoteData:
    symbol: str
    price: float
    quote_date: date
    volume: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    source: str = "yahoo_finance"


@dataclass
class QuoteUpdateResult:
    symbol: str
    success: bool
    price: float | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Market hours
# ---------------------------------------------------------------------------

def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_market_open(now: datetime | None = None) -> bool:
    """True on weekdays between market open and close in the market timezone."""
    tz = ZoneInfo(settings.market_timezone)
    now = now.astimezone(tz) if now else datetime.now(tz)
    if now.weekday() >= 5:
        return False
    return _parse_hhmm(settings.market_open) <= now.time() < _parse_hhmm(settings.market_close)


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def to_yahoo_ticker(symbol: str) -> str:
    symbol = symbol.upper()
    suffix = settings.quote_symbol_suffix
    if not suffix or symbol.endswith(suffix):
        return symbol
    return f"{symbol}{suffix}"


def _num(value) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)


def parse_history(symbol: str, history: pd.DataFrame) -> QuoteData | None:
    """Turn a yfinance history frame into the latest QuoteData."""
    if history is None or history.empty or "Close" not in history.columns:
        return None
    closes = history["Close"].dropna()
    if closes.empty:
        return None
    row = history.loc[closes.index[-1]]
    price = float(row["Close"])
    if price <= 0:
        return None
    ts = closes.index[-1]
    quote_date = ts.date() if hasattr(ts, "date") else datetime.now(timezone.utc).date()
    return QuoteData(
        symbol=symbol,
        price=price,
        quote_date=quote_date,
        volume=_num(row.get("Volume")),
        high=_num(row.get("High")),
        low=_num(row.get("Low")),
        close=price,
    )


def fetch_quote_sync(symbol: str) -> QuoteData | None:
    """Fetch the latest daily bar for one symbol. Returns None when unavailable."""
    ticker = yf.Ticker(to_yahoo_ticker(symbol))
    history = ticker.history(period="5d", interval="1d", auto_adjust=False)
    return parse_history(symbol, history)


async def fetch_quotes(symbols: list[str]) -> dict[str, QuoteData | Exception | None]:
    """Fetch many symbols concurrently; yfinance is blocking so it runs in the executor."""
    loop = asyncio.get_running_loop()
    results = await asyncio.gather(
        *(loop.run_in_executor(None, fetch_quote_sync, s) for s in symbols),
        return_exceptions=True,
    )
    return dict(zip(symbols, results))


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def upsert_quote(repo: PortfolioRepository, instrument_id: int, data: QuoteData) -> Quote:
    """Insert the day's quote, or overwrite the prices of an existing one."""
    if data.price is None or data.price <= 0:
        raise ValidationError("price must be greater than zero", details={"price": data.price})
    if repo.get_instrument(instrument_id) is None:
        raise NotFoundError(f"Instrument {instrument_id} not found",
                            details={"instrument_id": instrument_id})

    now = datetime.now(timezone.utc)
    quote = repo.get_quote(instrument_id, data.quote_date)
    if quote is None:
        quote = Quote(instrument_id=instrument_id, price=data.price, quote_date=data.quote_date)
    quote.price = data.price
    quote.volume = data.volume
    quote.high = data.high
    quote.low = data.low
    quote.close = data.close if data.close is not None else data.price
    quote.quote_time = now.strftime("%H:%M:%S")
    quote.source = data.source
    return repo.add(quote)


async def refresh_quotes(
    repo: PortfolioRepository,
    instruments: list[Instrument] | None = None,
) -> list[QuoteUpdateResult]:
    """Fetch and store quotes for the given (default: all active) instruments."""
    instruments = instruments if instruments is not None else repo.list_instruments(active_only=True)
    if not instruments:
        return []

    fetched = await fetch_quotes([i.symbol for i in instruments])
    results: list[QuoteUpdateResult] = []
    with repo.transaction():
        for instrument in instruments:
            data = fetched.get(instrument.symbol)
            if isinstance(data, Exception):
                logger.warning(f"Quote fetch failed for {instrument.symbol}: {data}")
                results.append(QuoteUpdateResult(instrument.symbol, False, error=str(data)))
                continue
            if data is None:
                results.append(QuoteUpdateResult(instrument.symbol, False, error="No price data available"))
                continue
            upsert_quote(repo, instrument.id, data)
            results.append(QuoteUpdateResult(instrument.symbol, True, price=data.price))

    ok = sum(1 for r in results if r.success)
    logger.info(f"Quote refresh: {ok}/{len(results)} updated")
    return results
