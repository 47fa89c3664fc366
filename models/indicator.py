from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Trend(str, Enum):
    BULLISH = "Bullish"
    SIDEWAYS = "Sideways"
    BEARISH = "Bearish"


class VolatilityRegime(str, Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    EXTREME = "Extreme"


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Features of one symbol at its latest bar. Built fresh per evaluation."""
    symbol: str
    price: float
    volume: float
    rsi: float
    macd_histogram: float
    macd_cross_up: bool
    macd_trend: Trend
    ema20: float
    ema50: float
    trend: Trend
    volume_ratio: float
    support_level: float
    resistance_level: float
    distance_from_support: float    # %
    distance_from_resistance: float  # %
    volatility_regime: VolatilityRegime
    atr: float
    atr_pct: float
    bearish_divergence: bool = False
    confluence_score: int = 0
    insufficient_data: bool = False
    bar_count: int = 0
