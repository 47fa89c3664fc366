"""
models/config.py
----------------
Typed configuration tree for the signal engine.

Every threshold used by the enricher, scorer, classifier, risk planner and
outcome tracker lives here so that strategies can be tuned without touching
branching logic. ``core.initialization.load_configuration`` overlays values
from the environment on top of these defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from models.indicator import Trend, VolatilityRegime


class OnInvalidLevels(str, Enum):
    CORRECT = "correct"
    REJECT = "reject"


# ------------------------------------------------------------------ #
# Enrichment
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class IndicatorConfig:
    min_history_bars: int = 20
    ema_fast: int = 20
    ema_slow: int = 50
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    macd_trend_lookback: int = 8
    macd_trend_factor: float = 1.5
    atr_period: int = 14
    volume_lookback: int = 20
    swing_order: int = 2
    support_buffer: float = 0.98
    resistance_buffer: float = 1.02
    fallback_support_factor: float = 0.95
    fallback_resistance_factor: float = 1.05
    divergence_min_points: int = 15
    # (upper bound of atr_pct, regime); anything above the last bound is EXTREME
    volatility_breakpoints: Tuple[Tuple[float, VolatilityRegime], ...] = (
        (1.0, VolatilityRegime.LOW),
        (2.5, VolatilityRegime.NORMAL),
        (4.0, VolatilityRegime.HIGH),
    )


# ------------------------------------------------------------------ #
# Scoring
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class ScoringConfig:
    trend_points: Dict[Trend, int] = field(default_factory=lambda: {
        Trend.BULLISH: 25,
        Trend.SIDEWAYS: 10,
        Trend.BEARISH: 0,
    })
    trend_max: int = 25

    # (low, high, points), first inclusive band wins
    rsi_bands: Tuple[Tuple[float, float, int], ...] = (
        (20.0, 40.0, 20),
        (15.0, 50.0, 15),
        (10.0, 60.0, 10),
    )
    rsi_max: int = 20

    macd_confirmed_points: int = 20
    macd_positive_points: int = 15
    macd_cross_up_points: int = 10
    macd_max: int = 20

    # (ratio strictly above, points)
    volume_bands: Tuple[Tuple[float, int], ...] = (
        (2.0, 15),
        (1.5, 12),
        (1.2, 8),
    )
    volume_max: int = 15

    # (max distance from support, min distance from resistance or None, points)
    level_bands: Tuple[Tuple[float, Optional[float], int], ...] = (
        (3.0, 10.0, 20),
        (5.0, 8.0, 15),
        (8.0, None, 10),
    )
    level_max: int = 20


# ------------------------------------------------------------------ #
# Classification
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class StrongBuyRule:
    min_score: int = 75
    rsi_low: float = 20.0
    rsi_high: float = 40.0
    min_volume_ratio: float = 1.5
    max_distance_from_support: float = 5.0
    min_distance_from_resistance: float = 8.0
    confidence_bonus: int = 5
    confidence_cap: int = 95


@dataclass(frozen=True)
class MediumBuyRule:
    min_score: int = 60
    rsi_low: float = 20.0
    rsi_high: float = 45.0
    min_volume_ratio: float = 1.2
    confidence_bonus: int = 0
    confidence_cap: int = 85


@dataclass(frozen=True)
class WarningRule:
    min_score: int = 50
    oversold_rsi: float = 25.0
    bearish_rsi: float = 30.0
    bearish_min_volume_ratio: float = 1.5
    max_distance_from_support: float = 3.0
    confidence_bonus: int = 0
    confidence_cap: int = 75


@dataclass(frozen=True)
class SellRule:
    enabled: bool = True
    min_rsi: float = 70.0
    max_distance_from_resistance: float = 3.0
    require_divergence: bool = True
    confidence_bonus: int = 0
    confidence_cap: int = 80


@dataclass(frozen=True)
class BasicRule:
    """Rules used when the history window is too short for full analysis."""
    max_rsi: float = 25.0
    confidence: int = 65


@dataclass(frozen=True)
class ClassifierConfig:
    cooldown_hours: float = 2.0
    max_signals_per_day: int = 2
    daily_window_hours: float = 24.0
    strong_buy: StrongBuyRule = field(default_factory=StrongBuyRule)
    medium_buy: MediumBuyRule = field(default_factory=MediumBuyRule)
    warning: WarningRule = field(default_factory=WarningRule)
    sell: SellRule = field(default_factory=SellRule)
    basic: BasicRule = field(default_factory=BasicRule)


# ------------------------------------------------------------------ #
# Risk
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class RiskConfig:
    min_risk_reward: float = 2.0
    atr_multipliers: Dict[VolatilityRegime, float] = field(default_factory=lambda: {
        VolatilityRegime.LOW: 2.0,
        VolatilityRegime.NORMAL: 2.5,
        VolatilityRegime.HIGH: 3.0,
        VolatilityRegime.EXTREME: 4.0,
    })
    structural_stop_factor: float = 0.98
    max_stop_pct: float = 15.0
    # (min confidence, stop distance %) checked in order; default below
    confidence_stop_bands: Tuple[Tuple[float, float], ...] = (
        (90.0, 3.0),
        (80.0, 4.0),
        (70.0, 5.0),
        (60.0, 6.0),
    )
    default_confidence_stop_pct: float = 7.0
    resistance_target_factor: float = 0.95
    min_resistance_gap_pct: float = 1.0
    # (min confidence, reward multiple of risk)
    confidence_target_bands: Tuple[Tuple[float, float], ...] = (
        (90.0, 3.5),
        (80.0, 3.0),
        (70.0, 2.8),
        (60.0, 2.5),
    )
    default_confidence_target_multiple: float = 2.0
    max_take_profit_pct: float = 40.0
    min_valid_risk_reward: float = 0.1
    max_valid_risk_reward: float = 10.0
    on_invalid_levels: OnInvalidLevels = OnInvalidLevels.CORRECT
    fallback_stop_pct: float = 5.0
    fallback_take_profit_pct: float = 15.0
    invalid_support_factor: float = 0.95
    invalid_resistance_factor: float = 1.05
    portfolio_value: float = 10_000.0
    max_position_pct: float = 5.0
    max_stop_loss_pct: float = 15.0
    risk_reward_tolerance: float = 1e-6


# ------------------------------------------------------------------ #
# Tracking
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class TrackingConfig:
    tracking_window_days: int = 30
    retention_days: int = 180
    statistics_days: int = 90
    confidence_buckets: Tuple[Tuple[int, int], ...] = (
        (60, 70),
        (70, 80),
        (80, 90),
        (90, 100),
    )


@dataclass(frozen=True)
class EngineConfig:
    symbols: Tuple[str, ...] = ()
    db_path: str = "data/signals.db"
    history_days: int = 100
    max_concurrency: int = 4
    max_requests_per_10s: int = 20
    indicator: IndicatorConfig = field(default_factory=IndicatorConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
