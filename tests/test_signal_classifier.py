from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from models.config import ClassifierConfig, SellRule
from models.indicator import Trend
from models.signal import SignalTier, SignalType
from modules.signal_classifier import SignalClassifier, signal_hash

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def quiet_history():
    history = MagicMock()
    history.last_sent_signal_at.return_value = None
    history.count_sent_signals_since.return_value = 0
    return history


@pytest.fixture
def classifier(quiet_history):
    return SignalClassifier(ClassifierConfig(), quiet_history)


# ------------------------- Tiers ------------------------- #

def test_strong_buy_on_textbook_setup(classifier, make_snapshot, now):
    signal = classifier.classify(make_snapshot(confluence_score=87), now)
    assert signal.signal_type is SignalType.BUY
    assert signal.tier is SignalTier.STRONG_BUY
    assert signal.confidence == 92
    assert signal.entry_price == 100.0
    assert signal.created_at == now
    assert "Bullish trend" in signal.reason
    assert "Volume spike (1.8x)" in signal.reason
    assert "Near support" in signal.reason
    assert signal.reason.endswith("Confluence: 87/100")


def test_strong_buy_confidence_is_capped(classifier, make_snapshot, now):
    assert classifier.classify(make_snapshot(confluence_score=100), now).confidence == 95


def test_divergence_blocks_strong_buy(classifier, make_snapshot, now):
    signal = classifier.classify(make_snapshot(confluence_score=87, bearish_divergence=True), now)
    assert signal.tier is SignalTier.MEDIUM_BUY
    assert signal.confidence == 85


def test_medium_buy(classifier, make_snapshot, now):
    snapshot = make_snapshot(trend=Trend.SIDEWAYS, rsi=42.0, volume_ratio=1.3, confluence_score=65)
    signal = classifier.classify(snapshot, now)
    assert signal.tier is SignalTier.MEDIUM_BUY
    assert signal.confidence == 65
    assert "Sideways trend" in signal.reason


def test_medium_buy_accepts_fresh_cross_up(classifier, make_snapshot, now):
    snapshot = make_snapshot(
        trend=Trend.SIDEWAYS, rsi=42.0, volume_ratio=1.3, confluence_score=65,
        macd_histogram=-0.01, macd_cross_up=True,
    )
    signal = classifier.classify(snapshot, now)
    assert signal.tier is SignalTier.MEDIUM_BUY
    assert "MACD bullish crossover" in signal.reason


def test_warning_on_bearish_capitulation_at_support(classifier, make_snapshot, now):
    snapshot = make_snapshot(trend=Trend.BEARISH, distance_from_support=2.0, confluence_score=55)
    signal = classifier.classify(snapshot, now)
    assert signal.signal_type is SignalType.WARNING
    assert signal.tier is SignalTier.WARNING
    assert signal.confidence == 55
    assert "Bearish selling climax" in signal.reason


def test_warning_needs_support_nearby(classifier, make_snapshot, now):
    snapshot = make_snapshot(trend=Trend.BEARISH, distance_from_support=4.0, confluence_score=55)
    assert classifier.classify(snapshot, now) is None


def test_sell_on_overbought_divergence(classifier, make_snapshot, now):
    snapshot = make_snapshot(
        trend=Trend.BEARISH, rsi=75.0, macd_histogram=-0.2,
        distance_from_resistance=2.0, bearish_divergence=True, confluence_score=20,
    )
    signal = classifier.classify(snapshot, now)
    assert signal.signal_type is SignalType.SELL
    assert signal.tier is SignalTier.SELL
    assert "Bearish RSI divergence" in signal.reason


def test_sell_can_be_disabled(make_snapshot, now, quiet_history):
    config = replace(ClassifierConfig(), sell=SellRule(enabled=False))
    snapshot = make_snapshot(
        trend=Trend.BEARISH, rsi=75.0, macd_histogram=-0.2,
        distance_from_resistance=2.0, bearish_divergence=True, confluence_score=20,
    )
    assert SignalClassifier(config, quiet_history).classify(snapshot, now) is None


def test_no_signal_when_nothing_matches(classifier, make_snapshot, now):
    snapshot = make_snapshot(trend=Trend.SIDEWAYS, rsi=55.0, confluence_score=30)
    assert classifier.classify(snapshot, now) is None


# ------------------------- Cooldown ------------------------- #

def test_cooldown_suppresses_signal(classifier, quiet_history, make_snapshot, now):
    quiet_history.last_sent_signal_at.return_value = now - timedelta(minutes=30)
    assert classifier.classify(make_snapshot(confluence_score=87), now) is None


def test_cooldown_expires(classifier, quiet_history, make_snapshot, now):
    quiet_history.last_sent_signal_at.return_value = now - timedelta(hours=3)
    quiet_history.count_sent_signals_since.return_value = 1
    assert classifier.classify(make_snapshot(confluence_score=87), now) is not None


def test_daily_cap(classifier, quiet_history, make_snapshot, now):
    quiet_history.last_sent_signal_at.return_value = now - timedelta(hours=5)
    quiet_history.count_sent_signals_since.return_value = 2
    assert classifier.classify(make_snapshot(confluence_score=87), now) is None
    since = quiet_history.count_sent_signals_since.call_args.args[1]
    assert since == now - timedelta(hours=24)


def test_no_history_means_no_cooldown(make_snapshot, now):
    assert SignalClassifier().classify(make_snapshot(confluence_score=87), now) is not None


# ------------------------- Basic rules ------------------------- #

def test_basic_buy_with_limited_history(classifier, make_snapshot, now):
    snapshot = make_snapshot(insufficient_data=True, bar_count=12, rsi=22.0, macd_cross_up=True)
    signal = classifier.classify(snapshot, now)
    assert signal.tier is SignalTier.BASIC_BUY
    assert signal.signal_type is SignalType.BUY
    assert signal.confidence == 65
    assert "limited data" in signal.reason


def test_limited_history_ignores_full_tiers(classifier, make_snapshot, now):
    snapshot = make_snapshot(insufficient_data=True, bar_count=12, confluence_score=87)
    assert classifier.classify(snapshot, now) is None


# ------------------------- Hash ------------------------- #

def test_hash_is_stable_within_the_hour(now):
    a = signal_hash("AAPL", SignalType.BUY, 28.4, now.replace(minute=5))
    b = signal_hash("AAPL", SignalType.BUY, 27.6, now.replace(minute=55))
    assert a == b
    assert a != signal_hash("AAPL", SignalType.BUY, 28.4, now + timedelta(hours=1))
    assert a != signal_hash("AAPL", SignalType.WARNING, 28.4, now)
    assert a != signal_hash("MSFT", SignalType.BUY, 28.4, now)


def test_classified_signal_carries_hash(classifier, make_snapshot, now):
    signal = classifier.classify(make_snapshot(confluence_score=87), now)
    assert signal.signal_hash == signal_hash("AAPL", SignalType.BUY, 28.0, now)
