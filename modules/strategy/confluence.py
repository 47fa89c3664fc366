"""
strategy/confluence.py
----------------------
Tiered confluence strategy. Tiers are checked in order, first match wins:

• STRONG_BUY – high score, bullish trend, RSI pullback, positive MACD,
  volume spike, close to support with room to resistance, no divergence
• MEDIUM_BUY – decent score, trend not bearish, MACD positive or crossing up
• WARNING    – oversold (or bearish capitulation on volume) right at support
• SELL       – overbought bearish setup under resistance with divergence
"""

from __future__ import annotations

from typing import List, Optional

from models.config import ClassifierConfig
from models.indicator import IndicatorSnapshot, Trend
from models.signal import SignalTier, SignalType

from .base import BaseStrategy, Classification


class ConfluenceStrategy(BaseStrategy):
    """Full-analysis tiers, thresholds taken from ClassifierConfig."""

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def evaluate(self, snapshot: IndicatorSnapshot) -> Optional[Classification]:
        for check in (self._strong_buy, self._medium_buy, self._warning, self._sell):
            result = check(snapshot)
            if result is not None:
                return result
        return None

    # -------------------------------------------------------------- #
    def _strong_buy(self, s: IndicatorSnapshot) -> Optional[Classification]:
        rule = self.config.strong_buy
        if not (
            s.confluence_score >= rule.min_score
            and s.trend is Trend.BULLISH
            and rule.rsi_low <= s.rsi <= rule.rsi_high
            and s.macd_histogram > 0
            and s.volume_ratio > rule.min_volume_ratio
            and s.distance_from_support <= rule.max_distance_from_support
            and s.distance_from_resistance > rule.min_distance_from_resistance
            and not s.bearish_divergence
        ):
            return None
        reasons = [
            "Bullish trend",
            f"RSI {s.rsi:.1f}",
            "MACD positive",
            f"Volume spike ({s.volume_ratio:.1f}x)",
            "Near support",
            f"Room to resistance ({s.distance_from_resistance:.1f}%)",
        ]
        return self._build(SignalType.BUY, SignalTier.STRONG_BUY, s, rule.confidence_bonus, rule.confidence_cap, reasons)

    def _medium_buy(self, s: IndicatorSnapshot) -> Optional[Classification]:
        rule = self.config.medium_buy
        if not (
            s.confluence_score >= rule.min_score
            and s.trend is not Trend.BEARISH
            and rule.rsi_low <= s.rsi <= rule.rsi_high
            and (s.macd_histogram > 0 or s.macd_cross_up)
            and s.volume_ratio > rule.min_volume_ratio
        ):
            return None
        reasons = [
            f"{s.trend.value} trend",
            f"RSI {s.rsi:.1f}",
            "MACD bullish crossover" if s.macd_cross_up else "MACD positive",
            f"Volume above average ({s.volume_ratio:.1f}x)",
        ]
        return self._build(SignalType.BUY, SignalTier.MEDIUM_BUY, s, rule.confidence_bonus, rule.confidence_cap, reasons)

    def _warning(self, s: IndicatorSnapshot) -> Optional[Classification]:
        rule = self.config.warning
        oversold = s.rsi <= rule.oversold_rsi
        capitulation = (
            s.trend is Trend.BEARISH
            and s.rsi <= rule.bearish_rsi
            and s.volume_ratio > rule.bearish_min_volume_ratio
        )
        if not (
            s.confluence_score >= rule.min_score
            and (oversold or capitulation)
            and s.distance_from_support <= rule.max_distance_from_support
        ):
            return None
        reasons = [
            f"Oversold RSI {s.rsi:.1f}" if oversold else f"Bearish selling climax ({s.volume_ratio:.1f}x volume)",
            f"At support ({s.distance_from_support:.1f}%)",
        ]
        return self._build(SignalType.WARNING, SignalTier.WARNING, s, rule.confidence_bonus, rule.confidence_cap, reasons)

    def _sell(self, s: IndicatorSnapshot) -> Optional[Classification]:
        rule = self.config.sell
        if not rule.enabled:
            return None
        if not (
            s.trend is Trend.BEARISH
            and s.rsi > rule.min_rsi
            and s.macd_histogram < 0
            and s.distance_from_resistance <= rule.max_distance_from_resistance
            and (s.bearish_divergence or not rule.require_divergence)
        ):
            return None
        reasons = [
            "Bearish trend",
            f"Overbought RSI {s.rsi:.1f}",
            "MACD negative",
            "Near resistance",
        ]
        if s.bearish_divergence:
            reasons.append("Bearish RSI divergence")
        return self._build(SignalType.SELL, SignalTier.SELL, s, rule.confidence_bonus, rule.confidence_cap, reasons)

    def _build(
        self,
        signal_type: SignalType,
        tier: SignalTier,
        s: IndicatorSnapshot,
        bonus: int,
        cap: int,
        reasons: List[str],
    ) -> Classification:
        reasons.append(f"Confluence: {s.confluence_score}/100")
        return Classification(
            signal_type=signal_type,
            tier=tier,
            confidence=self.capped_confidence(s.confluence_score, bonus, cap),
            reason=" | ".join(reasons),
        )
