"""
indicator.py
------------
Indicator enrichment for one symbol's bar window.

``IndicatorCalculator`` loads validated bars into a DataFrame, adds the
indicator columns in chained ``calculate_*`` steps and folds the latest row
into an :class:`~models.indicator.IndicatorSnapshot`. The module-level
functions are stateless and work on plain arrays so they can be reused and
tested in isolation.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema

from models.config import IndicatorConfig
from models.indicator import IndicatorSnapshot, Trend, VolatilityRegime
from models.price_bar import PriceBar
from modules.data_provider import DataProvider

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Stateless helpers
# ------------------------------------------------------------------ #
def ema_series(values: Sequence[float], period: int) -> np.ndarray:
    """EMA seeded by the SMA of the first ``period`` values; NaN before that."""
    values = np.asarray(values, dtype=float)
    out = np.full(len(values), np.nan)
    if period <= 0 or len(values) < period:
        return out
    k = 2.0 / (period + 1)
    out[period - 1] = values[:period].mean()
    for i in range(period, len(values)):
        out[i] = values[i] * k + out[i - 1] * (1 - k)
    return out


def ema(values: Sequence[float], period: int) -> float:
    """Latest EMA value, or the plain mean when there are fewer than ``period`` values."""
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        return 0.0
    if len(values) < period:
        return float(values.mean())
    return float(ema_series(values, period)[-1])


def rsi_series(close: pd.Series, period: int = 14) -> pd.Series:
    delta = close.diff()
    avg_gain = delta.clip(lower=0).rolling(window=period).mean()
    avg_loss = (-delta.clip(upper=0)).rolling(window=period).mean()
    rsi = 100 - (100 / (1 + avg_gain / avg_loss))
    # flat windows: all gains -> 100, no movement at all -> 50
    no_loss = np.where(avg_gain > 0, 100.0, 50.0)
    return rsi.where(avg_loss != 0, pd.Series(no_loss, index=close.index)).where(avg_loss.notna())


def macd_histogram(close: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> np.ndarray:
    """MACD histogram aligned with ``close``; NaN until the slow EMA exists.

    While fewer than ``signal`` MACD values exist, the signal line is their
    running mean.
    """
    close = np.asarray(close, dtype=float)
    hist = np.full(len(close), np.nan)
    macd_line = ema_series(close, fast) - ema_series(close, slow)
    valid = macd_line[~np.isnan(macd_line)]
    if valid.size == 0:
        return hist
    sig = ema_series(valid, signal)
    early = np.isnan(sig)
    sig[early] = (np.cumsum(valid) / np.arange(1, valid.size + 1))[early]
    hist[len(close) - valid.size:] = valid - sig
    return hist


def quick_macd_histogram(close: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> np.ndarray:
    """MACD histogram from first-value seeded EMAs, defined from the first bar.

    Used for windows too short for the SMA-seeded series.
    """
    close = pd.Series(np.asarray(close, dtype=float))
    macd_line = close.ewm(span=fast, adjust=False).mean() - close.ewm(span=slow, adjust=False).mean()
    sig = macd_line.ewm(span=signal, adjust=False).mean()
    return (macd_line - sig).to_numpy()


def classify_momentum(hist: np.ndarray, lookback: int = 8, factor: float = 1.5) -> Trend:
    """Direction of the histogram over its last ``lookback`` values."""
    recent = hist[~np.isnan(hist)][-lookback:]
    if recent.size < 3:
        return Trend.SIDEWAYS
    deltas = np.diff(recent)
    rising = int((deltas > 0).sum())
    falling = int((deltas < 0).sum())
    if rising > falling * factor:
        return Trend.BULLISH
    if falling > rising * factor:
        return Trend.BEARISH
    return Trend.SIDEWAYS


def true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    """True range per bar from the second bar on (the first has no previous close)."""
    if len(close) < 2:
        return np.array([], dtype=float)
    prev_close = close[:-1]
    return np.maximum(
        high[1:] - low[1:],
        np.maximum(np.abs(high[1:] - prev_close), np.abs(low[1:] - prev_close)),
    )


def find_swing_points(values: Sequence[float], order: int = 2) -> Tuple[np.ndarray, np.ndarray]:
    """Indices of swing lows and swing highs.

    A point qualifies only with ``order`` neighbours on each side and must be
    strictly below (lows) or above (highs) all of them.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    empty = np.array([], dtype=int)
    if n < 2 * order + 1:
        return empty, empty
    lows = argrelextrema(values, np.less, order=order)[0]
    highs = argrelextrema(values, np.greater, order=order)[0]

    def inner(idx: np.ndarray) -> np.ndarray:
        return idx[(idx >= order) & (idx < n - order)]

    return inner(lows), inner(highs)


def key_levels(values: Sequence[float], price: float, config: IndicatorConfig) -> Tuple[float, float]:
    """Support and resistance around ``price`` from swing points, with fallbacks."""
    values = np.asarray(values, dtype=float)
    low_idx, high_idx = find_swing_points(values, config.swing_order)

    swing_lows = values[low_idx]
    below = swing_lows[swing_lows < price * config.support_buffer]
    support = float(below.max()) if below.size else price * config.fallback_support_factor

    swing_highs = values[high_idx]
    above = swing_highs[swing_highs > price * config.resistance_buffer]
    resistance = float(above.min()) if above.size else price * config.fallback_resistance_factor
    return support, resistance


def classify_trend(price: float, ema_fast: float, ema_slow: float) -> Trend:
    if price > ema_fast > ema_slow:
        return Trend.BULLISH
    if price < ema_fast < ema_slow:
        return Trend.BEARISH
    return Trend.SIDEWAYS


def classify_volatility(atr_pct: float, breakpoints) -> VolatilityRegime:
    for upper, regime in breakpoints:
        if atr_pct < upper:
            return regime
    return VolatilityRegime.EXTREME


def volume_ratio(volumes: Sequence[float], lookback: int = 20) -> float:
    volumes = np.asarray(volumes, dtype=float)
    if volumes.size == 0:
        return 1.0
    avg = volumes[-lookback:].mean()
    return float(volumes[-1] / avg) if avg > 0 else 1.0


def detect_bearish_divergence(closes: Sequence[float], rsis: Sequence[float], min_points: int = 15) -> bool:
    """Higher high in price over the second half of the window with a lower RSI high."""
    closes = np.asarray(closes, dtype=float)
    rsis = np.asarray(rsis, dtype=float)
    mask = ~np.isnan(rsis)
    closes, rsis = closes[mask], rsis[mask]
    if closes.size < min_points:
        return False
    mid = closes.size // 2
    higher_price = closes[mid:].max() > closes[:mid].max()
    lower_rsi = rsis[mid:].max() < rsis[:mid].max()
    return bool(higher_price and lower_rsi)


def _pct_below(price: float, level: float) -> float:
    return (price - level) / price * 100 if price else 0.0


def _pct_above(price: float, level: float) -> float:
    return (level - price) / price * 100 if price else 0.0


# ------------------------------------------------------------------ #
# Calculator
# ------------------------------------------------------------------ #
class IndicatorCalculator:
    """Enrich a bar window into an IndicatorSnapshot."""

    def __init__(self, config: Optional[IndicatorConfig] = None, data_provider: Optional[DataProvider] = None):
        self.config = config or IndicatorConfig()
        self.data_provider = data_provider or DataProvider()
        self.df = pd.DataFrame(columns=DataProvider.columns)

    def load(self, bars: Sequence[PriceBar]) -> "IndicatorCalculator":
        self.df = self.data_provider.bars_to_frame(bars)
        return self

    def enrich(self, symbol: str, bars: Sequence[PriceBar]) -> IndicatorSnapshot:
        """Snapshot for one window. Each call runs on its own calculator; ``self.df`` is left untouched."""
        if not bars:
            raise ValueError(f"{symbol}: no price bars to enrich")
        window = IndicatorCalculator(self.config, self.data_provider).load(bars)
        return window.run_all().snapshot(symbol)

    def run_all(self) -> "IndicatorCalculator":
        return (
            self.calculate_rsi()
                .calculate_macd()
                .calculate_true_range()
        )

    def is_limited(self) -> bool:
        """Fewer prior bars than ``min_history_bars``."""
        return len(self.df) - 1 < self.config.min_history_bars

    def calculate_rsi(self) -> "IndicatorCalculator":
        period = self.config.rsi_period
        if self.is_limited():
            period = max(1, min(period, len(self.df) - 1))
        self.df["rsi"] = rsi_series(self.df["close"].astype(float), period)
        return self

    def calculate_macd(self) -> "IndicatorCalculator":
        cfg = self.config
        calc = quick_macd_histogram if self.is_limited() else macd_histogram
        self.df["macd_hist"] = calc(
            self.df["close"].to_numpy(dtype=float), cfg.macd_fast, cfg.macd_slow, cfg.macd_signal
        )
        return self

    def calculate_true_range(self) -> "IndicatorCalculator":
        tr = true_range(
            self.df["high"].to_numpy(dtype=float),
            self.df["low"].to_numpy(dtype=float),
            self.df["close"].to_numpy(dtype=float),
        )
        self.df["tr"] = np.concatenate([[np.nan], tr]) if len(self.df) else []
        return self

    def get_df(self) -> pd.DataFrame:
        return self.df

    # -------------------------------------------------------------- #
    def snapshot(self, symbol: str) -> IndicatorSnapshot:
        cfg = self.config
        df = self.df
        close = df["close"].to_numpy(dtype=float)
        price = float(close[-1])
        volume = float(df["volume"].iloc[-1])

        rsi_now = df["rsi"].iloc[-1]
        rsi_now = 50.0 if pd.isna(rsi_now) else float(rsi_now)
        hist = df["macd_hist"].to_numpy(dtype=float)
        hist_now = 0.0 if np.isnan(hist[-1]) else float(hist[-1])
        cross_up = bool(len(hist) >= 2 and not np.isnan(hist[-2]) and hist_now > 0 >= hist[-2])
        vol_ratio = volume_ratio(df["volume"].to_numpy(dtype=float), cfg.volume_lookback)

        if self.is_limited():
            logger.debug("%s: %d prior bars, need %d; limited snapshot", symbol, len(df) - 1, cfg.min_history_bars)
            support = price * cfg.fallback_support_factor
            resistance = price * cfg.fallback_resistance_factor
            return IndicatorSnapshot(
                symbol=symbol,
                price=price,
                volume=volume,
                rsi=rsi_now,
                macd_histogram=hist_now,
                macd_cross_up=cross_up,
                macd_trend=Trend.SIDEWAYS,
                ema20=ema(close, cfg.ema_fast),
                ema50=ema(close, cfg.ema_slow),
                trend=Trend.SIDEWAYS,
                volume_ratio=vol_ratio,
                support_level=support,
                resistance_level=resistance,
                distance_from_support=_pct_below(price, support),
                distance_from_resistance=_pct_above(price, resistance),
                volatility_regime=VolatilityRegime.NORMAL,
                atr=0.0,
                atr_pct=0.0,
                insufficient_data=True,
                bar_count=len(df),
            )

        ema_fast = ema(close, cfg.ema_fast)
        ema_slow = ema(close, cfg.ema_slow)
        support, resistance = key_levels(close, price, cfg)

        tr = df["tr"].dropna().to_numpy(dtype=float)
        atr = float(tr[-cfg.atr_period:].mean()) if tr.size else 0.0
        atr_pct = atr / price * 100

        return IndicatorSnapshot(
            symbol=symbol,
            price=price,
            volume=volume,
            rsi=rsi_now,
            macd_histogram=hist_now,
            macd_cross_up=cross_up,
            macd_trend=classify_momentum(hist, cfg.macd_trend_lookback, cfg.macd_trend_factor),
            ema20=ema_fast,
            ema50=ema_slow,
            trend=classify_trend(price, ema_fast, ema_slow),
            volume_ratio=vol_ratio,
            support_level=support,
            resistance_level=resistance,
            distance_from_support=_pct_below(price, support),
            distance_from_resistance=_pct_above(price, resistance),
            volatility_regime=classify_volatility(atr_pct, cfg.volatility_breakpoints),
            atr=atr,
            atr_pct=atr_pct,
            bearish_divergence=detect_bearish_divergence(close, df["rsi"].to_numpy(dtype=float), cfg.divergence_min_points),
            insufficient_data=False,
            bar_count=len(df),
        )
