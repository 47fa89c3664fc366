from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from models.config import TrackingConfig
from models.signal import SignalTier, SignalType
from models.trade_outcome import Outcome, PerformanceRecord
from modules.data_provider import MarketDataError
from modules.outcome_tracker import OutcomeTracker
from utils import event_bus

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def tracker(store):
    return OutcomeTracker(store, TrackingConfig())


@pytest.fixture
def open_record(store, now):
    def _open(symbol="AAPL", days_ago=3, confidence=80, strategy="Resistance"):
        record = PerformanceRecord(
            symbol=symbol,
            strategy=strategy,
            signal_type="Buy",
            predicted_probability=float(confidence),
            confidence=confidence,
            entry_price=100.0,
            stop_loss=95.0,
            take_profit_price=115.0,
            take_profit_pct=15.0,
            created_at=now - timedelta(days=days_ago),
        )
        record.id = store.insert_performance_record(record)
        return record
    return _open


def close_record(tracker, store, record, outcome, price, now):
    assert store.complete_performance_record(tracker.complete(record, outcome, price, now))


# ------------------------- Classification ------------------------- #

def test_classify_outcomes(tracker, open_record, now):
    record = open_record()
    assert tracker.classify(record, 116.0, now) is Outcome.HIT
    assert tracker.classify(record, 115.0, now) is Outcome.HIT
    assert tracker.classify(record, 94.0, now) is Outcome.STOPPED_OUT
    assert tracker.classify(record, 101.0, now) is None
    assert tracker.classify(record, 101.0, now + timedelta(days=28)) is Outcome.EXPIRED


def test_complete_uses_boundary_prices(tracker, open_record, now):
    record = open_record()
    hit = tracker.complete(record, Outcome.HIT, 118.0, now)
    stopped = tracker.complete(record, Outcome.STOPPED_OUT, 90.0, now)
    expired = tracker.complete(record, Outcome.EXPIRED, 103.0, now)
    assert hit.actual_return == pytest.approx(15.0)
    assert stopped.actual_return == pytest.approx(-5.0)
    assert expired.actual_return == pytest.approx(3.0)
    assert hit.holding_period_days == 3
    assert hit.completed_at == now
    assert record.is_open


# ------------------------- Tracking ------------------------- #

def test_track_opens_record_for_leveled_signal(tracker, store, make_signal, now):
    signal = make_signal(stop_loss=95.06, take_profit=123.5, take_profit_pct=23.5, risk_method="Resistance")
    store.insert_signal(signal)
    record = tracker.track(signal, now)
    assert record.id is not None
    assert record.strategy == "Resistance"
    assert record.take_profit_price == 123.5
    assert store.get_signal(signal.signal_hash).performance_record_id == record.id


def test_track_skips_signal_without_levels(tracker, make_signal, now):
    assert tracker.track(make_signal(SignalType.SELL, SignalTier.SELL), now) is None


@pytest.mark.asyncio
async def test_update_skips_failing_symbol(tracker, store, open_record, now):
    aapl = open_record("AAPL")
    open_record("MSFT")
    received = []
    event_bus.subscribe("trade_outcome", received.append)

    async def latest_price(symbol):
        if symbol == "MSFT":
            raise MarketDataError("quote service down")
        return 120.0

    market_data = AsyncMock()
    market_data.fetch_latest_price.side_effect = latest_price
    try:
        completed = await tracker.update_active_tracking(market_data, now)
        await event_bus.drain()
    finally:
        event_bus.unsubscribe("trade_outcome", received.append)

    assert [r.id for r in completed] == [aapl.id]
    assert completed[0].outcome is Outcome.HIT
    assert [r.symbol for r in store.open_performance_records()] == ["MSFT"]
    assert [r.id for r in received] == [aapl.id]


@pytest.mark.asyncio
async def test_update_leaves_undecided_records_open(tracker, store, open_record, now):
    open_record()
    market_data = AsyncMock()
    market_data.fetch_latest_price.return_value = 101.0
    assert await tracker.update_active_tracking(market_data, now) == []
    assert len(store.open_performance_records()) == 1


def test_record_completes_only_once(tracker, store, open_record, now):
    record = open_record()
    first = tracker.complete(record, Outcome.HIT, 116.0, now)
    second = tracker.complete(record, Outcome.STOPPED_OUT, 94.0, now)
    assert store.complete_performance_record(first)
    assert not store.complete_performance_record(second)
    assert store.completed_performance_records()[0].outcome is Outcome.HIT


def test_purge_history(tracker, store, open_record, now):
    old = open_record(days_ago=250)
    close_record(tracker, store, old, Outcome.EXPIRED, 100.0, now - timedelta(days=200))
    open_record()
    assert tracker.purge_history(now) == 1
    assert len(store.open_performance_records()) == 1


def test_symbol_performance(tracker, store, open_record, now):
    older = open_record(days_ago=10)
    close_record(tracker, store, older, Outcome.HIT, 116.0, now)
    newer = open_record(days_ago=2)
    open_record("MSFT", days_ago=1)
    open_record(days_ago=45)

    history = tracker.symbol_performance("AAPL", now=now)
    assert [r.id for r in history] == [newer.id, older.id]
    assert history[0].is_open
    assert history[1].outcome is Outcome.HIT
    assert len(tracker.symbol_performance("AAPL", days=60, now=now)) == 3


# ------------------------- Statistics ------------------------- #

def test_strategy_statistics(tracker, store, open_record, now):
    close_record(tracker, store, open_record(strategy="Resistance"), Outcome.HIT, 116.0, now)
    close_record(tracker, store, open_record(strategy="Resistance"), Outcome.STOPPED_OUT, 94.0, now)
    close_record(tracker, store, open_record(strategy="Confidence (3x)"), Outcome.HIT, 120.0, now)

    stats = tracker.strategy_statistics(now=now)
    assert [s.strategy for s in stats] == ["Confidence (3x)", "Resistance"]
    resistance = stats[1]
    assert resistance.total_signals == 2
    assert resistance.successful_signals == 1
    assert resistance.success_rate == pytest.approx(50.0)
    assert resistance.average_return == pytest.approx(5.0)
    assert resistance.best_return == pytest.approx(15.0)
    assert resistance.worst_return == pytest.approx(-5.0)
    assert resistance.average_successful_return == pytest.approx(15.0)
    assert resistance.average_failed_return == pytest.approx(-5.0)
    assert resistance.average_holding_period == pytest.approx(3.0)


def test_statistics_respect_window(tracker, store, open_record, now):
    close_record(tracker, store, open_record(days_ago=120), Outcome.HIT, 116.0, now)
    assert tracker.strategy_statistics(now=now) == []
    assert len(tracker.strategy_statistics(days=365, now=now)) == 1


def test_confidence_buckets(tracker, store, open_record, now):
    close_record(tracker, store, open_record(confidence=65), Outcome.HIT, 116.0, now)
    close_record(tracker, store, open_record(confidence=70), Outcome.STOPPED_OUT, 94.0, now)
    close_record(tracker, store, open_record(confidence=100), Outcome.HIT, 116.0, now)

    buckets = {b.label: b for b in tracker.confidence_bucket_statistics(now=now)}
    assert buckets["60-70%"].total_signals == 1
    assert buckets["60-70%"].success_rate == pytest.approx(100.0)
    assert buckets["70-80%"].total_signals == 1
    assert buckets["70-80%"].success_rate == pytest.approx(0.0)
    assert buckets["80-90%"].total_signals == 0
    assert buckets["90-100%"].total_signals == 1


def test_performance_report(tracker, store, open_record, now):
    assert tracker.performance_report(now=now) == "No completed signals in the last 90 days."
    close_record(tracker, store, open_record(), Outcome.HIT, 116.0, now)
    report = tracker.performance_report(now=now)
    assert "Resistance: 1/1 successful (100.0%)" in report
    assert "80-90%: 1/1" in report
