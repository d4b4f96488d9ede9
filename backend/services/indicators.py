"""Technical indicators over daily quote history.

Pure functions over price and volume series, no database access.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd


def compute_rsi(values: np.ndarray, period: int = 14) -> float:
    """Wilder RSI of the last value. Returns NaN if insufficient data."""
    n = len(values)
    if n < period + 2:
        return float("nan")

    deltas = np.diff(values)
    gains = np.maximum(deltas, 0.0)
    losses = np.maximum(-deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def compute_sma(values: np.ndarray, window: int = 20) -> float:
    if len(values) < window:
        return float("nan")
    return float(np.mean(values[-window:]))


def compute_macd(
    values: np.ndarray,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[float, float]:
    """Return (macd, signal_line) for the last value, NaN if insufficient data."""
    if len(values) < slow + signal:
        return float("nan"), float("nan")
    series = pd.Series(values, dtype=float)
    macd = series.ewm(span=fast, adjust=False).mean() - series.ewm(span=slow, adjust=False).mean()
    signal_line = macd.ewm(span=signal, adjust=False).mean()
    return float(macd.iloc[-1]), float(signal_line.iloc[-1])


@dataclass
class TechnicalSnapshot:
    """Indicator readings used by the sell score."""
    rsi: float | None = None
    macd_signal: str | None = None  # "BUY", "SELL" or None
    sma_trend: str | None = None  # "UP", "DOWN" or None
    volume_signal: str | None = None  # "HIGH", "NORMAL" or None


def _clean(value: float) -> float | None:
    return None if value is None or np.isnan(value) else float(value)


def compute_snapshot(
    closes: list[float],
    volumes: list[float | None] | None = None,
    rsi_period: int = 14,
    sma_window: int = 20,
) -> TechnicalSnapshot:
    """Compute indicator readings from closes ordered oldest to newest."""
    prices = np.asarray(closes, dtype=float)
    if len(prices) == 0:
        return TechnicalSnapshot()

    rsi = _clean(compute_rsi(prices, rsi_period))

    macd, signal_line = compute_macd(prices)
    macd_signal = None
    if _clean(macd) is not None and _clean(signal_line) is not None:
        macd_signal = "BUY" if macd > signal_line else "SELL"

    sma = _clean(compute_sma(prices, sma_window))
    sma_trend = None
    if sma is not None:
        sma_trend = "UP" if prices[-1] >= sma else "DOWN"

    volume_signal = None
    if volumes:
        vols = np.asarray([v for v in volumes if v is not None], dtype=float)
        if len(vols) >= 2:
            baseline = float(np.mean(vols[:-1]))
            volume_signal = "HIGH" if baseline > 0 and vols[-1] > 1.5 * baseline else "NORMAL"

    return TechnicalSnapshot(
        rsi=rsi,
        macd_signal=macd_signal,
        sma_trend=sma_trend,
        volume_signal=volume_signal,
    )
