"""
confluence.py
-------------
Reduces an IndicatorSnapshot to a single 0-100 confluence score.

Five factors are scored independently and each is capped at its own maximum:

• trend        – EMA20/EMA50 alignment
• rsi          – where RSI sits relative to the oversold bands
• macd         – histogram sign, momentum and fresh cross-ups
• volume       – current volume against its recent average
• levels       – room between support below and resistance above
"""

from __future__ import annotations

from typing import Dict, Optional

from models.config import ScoringConfig
from models.indicator import IndicatorSnapshot, Trend


class ConfluenceScorer:
    """Pure, deterministic scorer driven entirely by ScoringConfig."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score(self, snapshot: IndicatorSnapshot) -> int:
        total = sum(self.breakdown(snapshot).values())
        return max(0, min(100, total))

    def breakdown(self, snapshot: IndicatorSnapshot) -> Dict[str, int]:
        return {
            "trend": self.trend_score(snapshot),
            "rsi": self.rsi_score(snapshot),
            "macd": self.macd_score(snapshot),
            "volume": self.volume_score(snapshot),
            "levels": self.level_score(snapshot),
        }

    # -------------------------------------------------------------- #
    def trend_score(self, snapshot: IndicatorSnapshot) -> int:
        cfg = self.config
        return min(cfg.trend_max, cfg.trend_points.get(snapshot.trend, 0))

    def rsi_score(self, snapshot: IndicatorSnapshot) -> int:
        cfg = self.config
        for low, high, points in cfg.rsi_bands:
            if low <= snapshot.rsi <= high:
                return min(cfg.rsi_max, points)
        return 0

    def macd_score(self, snapshot: IndicatorSnapshot) -> int:
        cfg = self.config
        if snapshot.macd_histogram > 0 and snapshot.macd_trend is Trend.BULLISH:
            points = cfg.macd_confirmed_points
        elif snapshot.macd_histogram > 0:
            points = cfg.macd_positive_points
        elif snapshot.macd_cross_up:
            points = cfg.macd_cross_up_points
        else:
            points = 0
        return min(cfg.macd_max, points)

    def volume_score(self, snapshot: IndicatorSnapshot) -> int:
        cfg = self.config
        for threshold, points in cfg.volume_bands:
            if snapshot.volume_ratio > threshold:
                return min(cfg.volume_max, points)
        return 0

    def level_score(self, snapshot: IndicatorSnapshot) -> int:
        cfg = self.config
        for max_support, min_resistance, points in cfg.level_bands:
            if snapshot.distance_from_support > max_support:
                continue
            if min_resistance is not None and snapshot.distance_from_resistance <= min_resistance:
                continue
            return min(cfg.level_max, points)
        return 0
