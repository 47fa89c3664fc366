# --------------------------------------------------------------------
# models/trade_outcome.py
# Life-cycle record of a tracked signal plus the read-side statistics
# aggregated from completed records.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Outcome(str, Enum):
    HIT = "Hit"
    STOPPED_OUT = "StoppedOut"
    PARTIAL_HIT = "PartialHit"
    EXPIRED = "Expired"

    @property
    def is_success(self) -> bool:
        return self in (Outcome.HIT, Outcome.PARTIAL_HIT)


@dataclass
class PerformanceRecord:
    symbol: str
    strategy: str
    signal_type: str
    predicted_probability: float
    confidence: int
    entry_price: float
    stop_loss: float
    take_profit_price: float
    take_profit_pct: float
    created_at: datetime
    id: Optional[int] = None
    signal_hash: Optional[str] = None
    outcome: Optional[Outcome] = None  # None while open
    actual_return: Optional[float] = None  # %
    holding_period_days: Optional[int] = None
    completed_at: Optional[datetime] = None
    notes: str = ""

    @property
    def is_open(self) -> bool:
        return self.outcome is None


@dataclass
class StrategyStatistics:
    strategy: str
    total_signals: int
    successful_signals: int
    success_rate: float
    average_return: float
    best_return: float
    worst_return: float
    average_successful_return: float
    average_failed_return: float
    average_holding_period: float
    average_predicted_probability: float


@dataclass
class ConfidenceBucketStatistics:
    min_confidence: int
    max_confidence: int
    total_signals: int
    successful_signals: int
    success_rate: float
    average_return: float

    @property
    def label(self) -> str:
        return f"{self.min_confidence}-{self.max_confidence}%"
