from datetime import datetime, timedelta, timezone

import pytest

from models.indicator import IndicatorSnapshot, Trend, VolatilityRegime
from models.price_bar import PriceBar
from models.signal import Signal, SignalTier, SignalType
from modules.persistence.sqlite import SQLitePersistence

NOW = datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc)


# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_bars():
    """Daily bars from a close series; returned newest-first like provider working sets."""
    def _make(closes, volumes=None, spread=0.01, start=NOW - timedelta(days=400), descending=True):
        bars = []
        for i, close in enumerate(closes):
            bars.append(PriceBar(
                timestamp=start + timedelta(days=i),
                open=close,
                high=close * (1 + spread),
                low=close * (1 - spread),
                close=close,
                volume=volumes[i] if volumes is not None else 1_000_000,
            ))
        return list(reversed(bars)) if descending else bars
    return _make


@pytest.fixture
def make_snapshot():
    """Snapshot defaults match the textbook strong-buy setup (RSI 28, +0.05 histogram, 1.8x volume)."""
    def _make(**overrides):
        values = dict(
            symbol="AAPL",
            price=100.0,
            volume=1_800_000,
            rsi=28.0,
            macd_histogram=0.05,
            macd_cross_up=False,
            macd_trend=Trend.SIDEWAYS,
            ema20=98.0,
            ema50=95.0,
            trend=Trend.BULLISH,
            volume_ratio=1.8,
            support_level=96.0,
            resistance_level=112.0,
            distance_from_support=4.0,
            distance_from_resistance=12.0,
            volatility_regime=VolatilityRegime.NORMAL,
            atr=2.0,
            atr_pct=2.0,
            bearish_divergence=False,
            confluence_score=0,
            insufficient_data=False,
            bar_count=100,
        )
        values.update(overrides)
        return IndicatorSnapshot(**values)
    return _make


@pytest.fixture
def store(tmp_path):
    persistence = SQLitePersistence(str(tmp_path / "signals.db"))
    yield persistence
    persistence.close()


@pytest.fixture
def make_signal():
    def _make(
        signal_type=SignalType.BUY,
        tier=SignalTier.STRONG_BUY,
        entry_price=100.0,
        confidence=80,
        symbol="AAPL",
        signal_hash=None,
        created_at=NOW,
        **fields,
    ):
        return Signal(
            symbol=symbol,
            signal_type=signal_type,
            tier=tier,
            confidence=confidence,
            reason="test setup",
            entry_price=entry_price,
            rsi=28.0,
            macd_histogram=0.05,
            signal_hash=signal_hash or f"{symbol}-{signal_type.value}-{entry_price}-{created_at:%Y%m%d%H}",
            created_at=created_at,
            **fields,
        )
    return _make
