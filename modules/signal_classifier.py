"""
signal_classifier.py
--------------------
Turns a scored IndicatorSnapshot into zero or one Signal.

Order of evaluation:

1. cooldown / anti-spam gate (needs the signal store)
2. full-analysis tiers (ConfluenceStrategy), or the basic rules
   (MacdRsiStrategy) when the snapshot was built from too little history
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Optional, Protocol

from models.config import ClassifierConfig
from models.indicator import IndicatorSnapshot
from models.signal import Signal, SignalType
from modules.strategy.base import BaseStrategy
from modules.strategy.confluence import ConfluenceStrategy
from modules.strategy.macd_rsi import MacdRsiStrategy
from utils.utils import ensure_utc, hour_bucket, utc_now

logger = logging.getLogger(__name__)


class SentSignalHistory(Protocol):
    def last_sent_signal_at(self, symbol: str) -> Optional[datetime]:
        ...

    def count_sent_signals_since(self, symbol: str, since: datetime) -> int:
        ...


def signal_hash(symbol: str, signal_type: SignalType, rsi: float, created_at: datetime) -> str:
    """Stable idempotency key: same symbol, type, rounded RSI and UTC hour -> same hash."""
    key = f"{symbol}|{signal_type.value}|{round(rsi)}|{hour_bucket(created_at)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class SignalClassifier:
    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        history: Optional[SentSignalHistory] = None,
        *,
        strategy: Optional[BaseStrategy] = None,
        basic_strategy: Optional[BaseStrategy] = None,
    ):
        self.config = config or ClassifierConfig()
        self.history = history
        self.strategy = strategy or ConfluenceStrategy(self.config)
        self.basic_strategy = basic_strategy or MacdRsiStrategy(self.config.basic)

    def is_in_cooldown(self, symbol: str, now: datetime) -> bool:
        if self.history is None:
            return False
        cfg = self.config

        last_sent = self.history.last_sent_signal_at(symbol)
        if last_sent is not None and now - ensure_utc(last_sent) < timedelta(hours=cfg.cooldown_hours):
            logger.info("%s: in cooldown, last signal sent at %s", symbol, last_sent.isoformat())
            return True

        sent_recently = self.history.count_sent_signals_since(symbol, now - timedelta(hours=cfg.daily_window_hours))
        if sent_recently >= cfg.max_signals_per_day:
            logger.info("%s: daily signal cap reached (%d)", symbol, sent_recently)
            return True
        return False

    def classify(self, snapshot: IndicatorSnapshot, now: Optional[datetime] = None) -> Optional[Signal]:
        now = ensure_utc(now) if now is not None else utc_now()
        if self.is_in_cooldown(snapshot.symbol, now):
            return None

        strategy = self.basic_strategy if snapshot.insufficient_data else self.strategy
        result = strategy.evaluate(snapshot)
        if result is None:
            return None

        logger.debug("%s: %s at confidence %d", snapshot.symbol, result.tier.value, result.confidence)
        return Signal(
            symbol=snapshot.symbol,
            signal_type=result.signal_type,
            tier=result.tier,
            confidence=result.confidence,
            reason=result.reason,
            entry_price=snapshot.price,
            rsi=snapshot.rsi,
            macd_histogram=snapshot.macd_histogram,
            signal_hash=signal_hash(snapshot.symbol, result.signal_type, snapshot.rsi, now),
            created_at=now,
        )
