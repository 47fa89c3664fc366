"""
signal_engine.py
----------------
Per-symbol evaluation pipeline and the batch client that drives it.

SignalEngine.evaluate:  bars -> enrich -> score -> classify -> SL/TP & size
                        -> insert-if-absent -> open performance record
SignalPollingClient:    fetches history through the market-data collaborator
                        with bounded parallelism and a request rate limit,
                        isolates per-symbol failures, hands new signals to the
                        dispatcher and runs outcome reconciliation.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections import defaultdict, deque
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from core.signal_handler import BaseDispatcher, handle_new_signal
from models.config import EngineConfig
from models.price_bar import PriceBar
from models.signal import Signal
from modules.confluence import ConfluenceScorer
from modules.data_provider import DataProvider, MarketDataClient, MarketDataError
from modules.indicator import IndicatorCalculator
from modules.outcome_tracker import OutcomeTracker
from modules.persistence.sqlite import SQLitePersistence
from modules.signal_classifier import SignalClassifier
from modules.trade_planner import TradePlanner
from utils.utils import ensure_utc, utc_now


# ---------------------------- rate limiter -------------------------------- #
class RateLimiter:
    """Simple sliding-window limiter (max N requests per window)."""

    def __init__(self, max_requests_per_10s: int, window_seconds: float = 10.0) -> None:
        self.max_requests = max_requests_per_10s
        self.window = window_seconds
        self.timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            while self.timestamps and now - self.timestamps[0] > self.window:
                self.timestamps.popleft()
            if len(self.timestamps) >= self.max_requests:
                await asyncio.sleep(self.window - (now - self.timestamps[0]))
                self.timestamps.popleft()
            self.timestamps.append(time.monotonic())


# ---------------------------- engine -------------------------------------- #
class SignalEngine:
    """Pure per-symbol pipeline plus the idempotent write of its result."""

    def __init__(
        self,
        config: EngineConfig,
        store: SQLitePersistence,
        logger: Optional[logging.Logger] = None,
        *,
        calculator: Optional[IndicatorCalculator] = None,
        scorer: Optional[ConfluenceScorer] = None,
        classifier: Optional[SignalClassifier] = None,
        trade_planner: Optional[TradePlanner] = None,
        tracker: Optional[OutcomeTracker] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.config = config
        self.store = store
        self.calculator = calculator or IndicatorCalculator(config.indicator)
        self.scorer = scorer or ConfluenceScorer(config.scoring)
        self.classifier = classifier or SignalClassifier(config.classifier, store)
        self.trade_planner = trade_planner or TradePlanner(config.risk)
        self.tracker = tracker

    def evaluate(self, symbol: str, bars: Sequence[PriceBar], now: Optional[datetime] = None) -> Optional[Signal]:
        """Return the newly persisted signal, or None (no setup, rejected levels, or duplicate hash)."""
        now = ensure_utc(now) if now is not None else utc_now()

        snapshot = self.calculator.enrich(symbol, bars)
        if snapshot.insufficient_data:
            self.logger.info("%s: only %d bars, basic rules only", symbol, snapshot.bar_count)
        else:
            snapshot = replace(snapshot, confluence_score=self.scorer.score(snapshot))

        signal = self.classifier.classify(snapshot, now)
        if signal is None:
            return None

        signal = self.trade_planner.plan(signal, snapshot)
        if signal is None:
            return None

        if not self.store.insert_signal(signal):
            self.logger.debug("%s: signal %s already persisted", symbol, signal.signal_hash[:12])
            return None

        if self.tracker is not None:
            record = self.tracker.track(signal, now)
            if record is not None:
                signal = signal.model_copy(update={"performance_record_id": record.id})

        self.logger.info("%s: %s signal, confidence %d%%", symbol, signal.tier.value, signal.confidence)
        return signal


# ---------------------------- polling client ------------------------------ #
class SignalPollingClient:
    """Asynchronous batch client over the market-data collaborator."""

    def __init__(
        self,
        config: EngineConfig,
        market_data: MarketDataClient,
        engine: SignalEngine,
        logger: Optional[logging.Logger] = None,
        *,
        data_provider: Optional[DataProvider] = None,
        dispatcher: Optional[BaseDispatcher] = None,
        rate_limiter: Optional[RateLimiter] = None,
        tracker: Optional[OutcomeTracker] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)

        # config
        self.symbols: List[str] = list(config.symbols)
        self.history_days = config.history_days
        self.max_concurrency = config.max_concurrency

        # components
        self.market_data = market_data
        self.engine = engine
        self.data_provider = data_provider or DataProvider()
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter or RateLimiter(max_requests_per_10s=config.max_requests_per_10s)
        self.tracker = tracker or engine.tracker

        self._symbol_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        # metrics
        self.metrics = {
            "requests_sent": 0,
            "errors": 0,
            "signals": 0,
            "latencies": [],
        }

    # -------------------------------------------------------------------- #
    async def fetch_bars(self, symbol: str) -> List[PriceBar]:
        await self.rate_limiter.acquire()
        t0 = time.monotonic()
        raw = await self.market_data.fetch_history(symbol, self.history_days)
        self.metrics["requests_sent"] += 1
        self.metrics["latencies"].append(time.monotonic() - t0)

        if isinstance(raw, list) and raw and isinstance(raw[0], PriceBar):
            bars = list(raw)
        else:
            bars = self.data_provider.bars_from_payload(raw)
        self.data_provider.put(symbol, bars)
        return bars

    async def process_symbol(
        self, symbol: str, semaphore: asyncio.Semaphore, now: Optional[datetime] = None
    ) -> Optional[Signal]:
        """Fetch, evaluate and dispatch one symbol. Never raises for a per-symbol failure."""
        async with semaphore, self._symbol_locks[symbol]:
            try:
                bars = await self.fetch_bars(symbol)
            except MarketDataError as exc:
                self.metrics["errors"] += 1
                self.logger.warning("History fetch failed for %s: %s", symbol, exc)
                return None
            except Exception:
                self.metrics["errors"] += 1
                self.logger.exception("Unexpected error fetching %s", symbol)
                return None

            if not bars:
                self.logger.warning("No usable bars for %s", symbol)
                return None

            try:
                signal = self.engine.evaluate(symbol, bars, now)
            except Exception:
                self.metrics["errors"] += 1
                self.logger.exception("Evaluation failed for %s", symbol)
                return None

            if signal is None:
                return None
            self.metrics["signals"] += 1
            await handle_new_signal(signal, store=self.engine.store, dispatcher=self.dispatcher, now=now)
            return signal

    async def run_batch(
        self, symbols: Optional[Iterable[str]] = None, now: Optional[datetime] = None
    ) -> Dict[str, Optional[Signal]]:
        symbols = list(symbols) if symbols is not None else self.symbols
        self.logger.info("Evaluating %d symbols", len(symbols))
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self.process_symbol(s, semaphore, now) for s in symbols),
            return_exceptions=True,
        )
        out: Dict[str, Optional[Signal]] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                self.metrics["errors"] += 1
                self.logger.error("Unhandled error for %s: %s", symbol, result)
                result = None
            out[symbol] = result
        return out

    async def reconcile_outcomes(self, now: Optional[datetime] = None):
        if self.tracker is None:
            self.logger.debug("No outcome tracker wired; skipping reconciliation")
            return []
        completed = await self.tracker.update_active_tracking(self.market_data, now)
        self.tracker.purge_history(now)
        return completed

    def log_metrics(self) -> None:
        avg = statistics.mean(self.metrics["latencies"]) if self.metrics["latencies"] else 0
        self.logger.info(
            "📊 Requests: %s | Errors: %s | Signals: %s | Avg latency: %.3fs",
            self.metrics["requests_sent"],
            self.metrics["errors"],
            self.metrics["signals"],
            avg,
        )
