"""
strategy/macd_rsi.py
--------------------
Basic rules for symbols whose history is too short for full analysis:

• BUY – RSI deeply oversold AND MACD histogram crosses ↑ through zero

The confidence is fixed and deliberately below every full-analysis tier.
"""

from __future__ import annotations

from typing import Optional

from models.config import BasicRule
from models.indicator import IndicatorSnapshot
from models.signal import SignalTier, SignalType

from .base import BaseStrategy, Classification


class MacdRsiStrategy(BaseStrategy):
    """MACD histogram cross filtered by RSI, for limited-data snapshots."""

    def __init__(self, rule: Optional[BasicRule] = None):
        self.rule = rule or BasicRule()

    def evaluate(self, snapshot: IndicatorSnapshot) -> Optional[Classification]:
        if snapshot.rsi < self.rule.max_rsi and snapshot.macd_cross_up:
            reason = (
                f"BASIC BUY: RSI oversold ({snapshot.rsi:.1f}) + MACD bullish crossover "
                f"(limited data: {snapshot.bar_count} bars)"
            )
            return Classification(
                signal_type=SignalType.BUY,
                tier=SignalTier.BASIC_BUY,
                confidence=self.rule.confidence,
                reason=reason,
            )
        return None
