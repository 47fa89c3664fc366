"""
strategy/base.py
----------------
Common interface for all strategy implementations.

A Strategy receives an enriched, scored IndicatorSnapshot and decides
whether it qualifies for a signal tier. Cooldown gating, hashing and
building the Signal record belong to the SignalClassifier, not here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from models.indicator import IndicatorSnapshot
from models.signal import SignalTier, SignalType


@dataclass(frozen=True)
class Classification:
    signal_type: SignalType
    tier: SignalTier
    confidence: int
    reason: str


class BaseStrategy(ABC):
    """Abstract base strategy with a single entry point."""

    @abstractmethod
    def evaluate(self, snapshot: IndicatorSnapshot) -> Optional[Classification]:
        """
        Return the first matching Classification for the snapshot, or None.
        """
        raise NotImplementedError

    @staticmethod
    def capped_confidence(score: int, bonus: int, cap: int) -> int:
        return max(0, min(cap, score + bonus))
