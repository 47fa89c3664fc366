"""
outcome_tracker.py
------------------
Reconciles open performance records against the latest price and
aggregates completed records into per-strategy and per-confidence stats.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd

from models.config import TrackingConfig
from models.signal import Signal
from models.trade_outcome import (
    ConfidenceBucketStatistics,
    Outcome,
    PerformanceRecord,
    StrategyStatistics,
)
from modules.data_provider import MarketDataClient
from modules.persistence.sqlite import SQLitePersistence
from utils.event_bus import publish
from utils.utils import ensure_utc, pct_change, utc_now

logger = logging.getLogger(__name__)


def _mean(series: pd.Series) -> float:
    return float(series.mean()) if len(series) else 0.0


class OutcomeTracker:
    def __init__(self, store: SQLitePersistence, config: Optional[TrackingConfig] = None):
        self.store = store
        self.config = config or TrackingConfig()

    # ------------------------------------------------------------------ #
    # Write side
    # ------------------------------------------------------------------ #
    def track(self, signal: Signal, now: Optional[datetime] = None) -> Optional[PerformanceRecord]:
        """Open a performance record for a signal that carries SL/TP levels."""
        if not signal.has_risk_levels:
            return None
        record = PerformanceRecord(
            symbol=signal.symbol,
            strategy=signal.risk_method or signal.tier.value,
            signal_type=signal.signal_type.value,
            predicted_probability=float(signal.confidence),
            confidence=signal.confidence,
            entry_price=signal.entry_price,
            stop_loss=signal.stop_loss,
            take_profit_price=signal.take_profit,
            take_profit_pct=signal.take_profit_pct or 0.0,
            created_at=ensure_utc(now) if now is not None else signal.created_at,
            signal_hash=signal.signal_hash,
            notes="" if signal.actionable else "non-actionable (0 shares)",
        )
        record.id = self.store.insert_performance_record(record)
        self.store.link_performance_record(signal.signal_hash, record.id)
        logger.debug("Tracking %s via %s (record %s)", signal.symbol, record.strategy, record.id)
        return record

    def classify(self, record: PerformanceRecord, price: float, now: datetime) -> Optional[Outcome]:
        if price >= record.take_profit_price:
            return Outcome.HIT
        if price <= record.stop_loss:
            return Outcome.STOPPED_OUT
        if ensure_utc(now) - ensure_utc(record.created_at) > timedelta(days=self.config.tracking_window_days):
            return Outcome.EXPIRED
        return None

    def complete(self, record: PerformanceRecord, outcome: Outcome, price: float, now: datetime) -> PerformanceRecord:
        """Return a completed copy; the boundary price is used for Hit/StoppedOut, live price otherwise."""
        if outcome is Outcome.HIT:
            exit_price = record.take_profit_price
            note = f"Take profit hit at {price:.4f}"
        elif outcome is Outcome.STOPPED_OUT:
            exit_price = record.stop_loss
            note = f"Stop loss hit at {price:.4f}"
        else:
            exit_price = price
            note = f"Expired after {self.config.tracking_window_days} days at {price:.4f}"
        now = ensure_utc(now)
        return replace(
            record,
            outcome=outcome,
            actual_return=pct_change(record.entry_price, exit_price),
            holding_period_days=(now - ensure_utc(record.created_at)).days,
            completed_at=now,
            notes="; ".join(n for n in (record.notes, note) if n),
        )

    async def update_active_tracking(
        self, market_data: MarketDataClient, now: Optional[datetime] = None
    ) -> List[PerformanceRecord]:
        """Check every open record once. A symbol whose price fetch fails is skipped."""
        now = ensure_utc(now) if now is not None else utc_now()
        by_symbol: Dict[str, List[PerformanceRecord]] = defaultdict(list)
        for record in self.store.open_performance_records():
            by_symbol[record.symbol].append(record)

        completed: List[PerformanceRecord] = []
        for symbol, records in by_symbol.items():
            try:
                price = float(await market_data.fetch_latest_price(symbol))
            except Exception as exc:
                logger.warning("Price fetch failed for %s: %s", symbol, exc)
                continue
            if price <= 0:
                logger.warning("Ignoring non-positive price %.4f for %s", price, symbol)
                continue

            for record in records:
                outcome = self.classify(record, price, now)
                if outcome is None:
                    continue
                done = self.complete(record, outcome, price, now)
                if not self.store.complete_performance_record(done):
                    logger.debug("Record %s already completed elsewhere", record.id)
                    continue
                completed.append(done)
                logger.info("%s %s: %s (%+.2f%%)", symbol, done.strategy, outcome.value, done.actual_return)
                publish("trade_outcome", done)

        logger.info("Outcome update: %d open symbols checked, %d records completed", len(by_symbol), len(completed))
        return completed

    def purge_history(self, now: Optional[datetime] = None) -> int:
        now = ensure_utc(now) if now is not None else utc_now()
        removed = self.store.purge_performance_records(now - timedelta(days=self.config.retention_days))
        if removed:
            logger.info("Purged %d completed records older than %d days", removed, self.config.retention_days)
        return removed

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    def _completed_frame(self, days: Optional[int], now: Optional[datetime]) -> pd.DataFrame:
        days = self.config.statistics_days if days is None else days
        now = ensure_utc(now) if now is not None else utc_now()
        records = self.store.completed_performance_records(since=now - timedelta(days=days))
        df = pd.DataFrame([asdict(r) for r in records])
        if not df.empty:
            df["success"] = df["outcome"].map(lambda o: o.is_success).astype(bool)
        return df

    def symbol_performance(
        self, symbol: str, days: int = 30, now: Optional[datetime] = None
    ) -> List[PerformanceRecord]:
        """Every record opened for ``symbol`` in the last ``days`` days, newest first."""
        now = ensure_utc(now) if now is not None else utc_now()
        return self.store.symbol_performance_records(symbol, since=now - timedelta(days=days))

    def strategy_statistics(self, days: Optional[int] = None, now: Optional[datetime] = None) -> List[StrategyStatistics]:
        df = self._completed_frame(days, now)
        if df.empty:
            return []
        stats = []
        for strategy, group in df.groupby("strategy"):
            wins = group[group["success"]]
            losses = group[~group["success"]]
            stats.append(StrategyStatistics(
                strategy=str(strategy),
                total_signals=len(group),
                successful_signals=len(wins),
                success_rate=len(wins) / len(group) * 100,
                average_return=_mean(group["actual_return"]),
                best_return=float(group["actual_return"].max()),
                worst_return=float(group["actual_return"].min()),
                average_successful_return=_mean(wins["actual_return"]),
                average_failed_return=_mean(losses["actual_return"]),
                average_holding_period=_mean(group["holding_period_days"]),
                average_predicted_probability=_mean(group["predicted_probability"]),
            ))
        return sorted(stats, key=lambda s: s.success_rate, reverse=True)

    def confidence_bucket_statistics(
        self, days: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[ConfidenceBucketStatistics]:
        df = self._completed_frame(days, now)
        buckets = []
        last = len(self.config.confidence_buckets) - 1
        for i, (low, high) in enumerate(self.config.confidence_buckets):
            if df.empty:
                group = df
            else:
                upper = df["confidence"] <= high if i == last else df["confidence"] < high
                group = df[(df["confidence"] >= low) & upper]
            wins = int(group["success"].sum()) if len(group) else 0
            buckets.append(ConfidenceBucketStatistics(
                min_confidence=low,
                max_confidence=high,
                total_signals=len(group),
                successful_signals=wins,
                success_rate=wins / len(group) * 100 if len(group) else 0.0,
                average_return=_mean(group["actual_return"]) if len(group) else 0.0,
            ))
        return buckets

    def performance_report(self, days: Optional[int] = None, now: Optional[datetime] = None) -> str:
        days = self.config.statistics_days if days is None else days
        strategies = self.strategy_statistics(days, now)
        if not strategies:
            return f"No completed signals in the last {days} days."

        lines = [f"PERFORMANCE REPORT (last {days} days)", ""]
        for s in strategies:
            lines.append(
                f"{s.strategy}: {s.successful_signals}/{s.total_signals} successful "
                f"({s.success_rate:.1f}%), avg return {s.average_return:+.2f}%, "
                f"best {s.best_return:+.2f}%, worst {s.worst_return:+.2f}%, "
                f"avg hold {s.average_holding_period:.1f}d"
            )
        lines.append("")
        lines.append("By confidence:")
        for b in self.confidence_bucket_statistics(days, now):
            if b.total_signals:
                lines.append(
                    f"  {b.label}: {b.successful_signals}/{b.total_signals} "
                    f"({b.success_rate:.1f}%), avg return {b.average_return:+.2f}%"
                )
        return "\n".join(lines)
