from datetime import datetime, timezone

import pytest

from models.price_bar import PriceBar
from modules.data_provider import BarCache, DataProvider

TS = 1_767_225_600  # 2026-01-01 00:00 UTC


@pytest.fixture
def provider():
    return DataProvider()


def test_list_of_lists(provider):
    bars = provider.bars_from_payload({"data": [[TS, 10, 11, 9, 10.5, 1000], [TS + 86_400, 10.5, 12, 10, 11, 900]]})
    assert len(bars) == 2
    assert bars[0].timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert bars[1].close == 11.0


def test_millisecond_timestamps(provider):
    bars = provider.bars_from_payload([[TS * 1000, 10, 11, 9, 10.5, 1000]])
    assert bars[0].timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_list_of_dicts_with_short_keys(provider):
    bars = provider.bars_from_payload([{"t": TS, "o": 10, "h": 11, "l": 9, "c": 10.5, "v": 1000}])
    assert bars[0].open == 10.0
    assert bars[0].volume == 1000.0


def test_columnar_payload(provider):
    payload = {
        "timestamp": [TS, TS + 86_400],
        "open": [10, 11],
        "high": [11, 12],
        "low": [9, 10],
        "close": [10.5, 11.5],
        "volume": [1000, 1100],
    }
    assert [b.close for b in provider.bars_from_payload(payload)] == [10.5, 11.5]


def test_ragged_columns_are_ignored(provider, caplog):
    payload = {"timestamp": [TS], "open": [10, 11], "high": [11], "low": [9], "close": [10.5], "volume": [1]}
    assert provider.bars_from_payload(payload) == []
    assert "ragged" in caplog.text


def test_malformed_rows_are_dropped(provider, caplog):
    rows = [
        [TS, 10, 11, 9, 10.5, 1000],
        [TS + 86_400, 10, 9, 11, 10.5, 1000],   # high below low
        [TS + 172_800, -1, 11, 9, 10.5, 1000],  # negative open
        [TS + 259_200, 10, 11, 9],              # missing fields
    ]
    bars = provider.bars_from_payload(rows)
    assert len(bars) == 1
    assert caplog.text.count("Dropping malformed bar") == 3


def test_unknown_shape(provider):
    assert provider.bars_from_payload(None) == []
    assert provider.bars_from_payload({"data": []}) == []


def test_frame_is_sorted_ascending(provider):
    bars = provider.bars_from_payload([[TS + 86_400, 11, 12, 10, 11, 1], [TS, 10, 11, 9, 10, 1]])
    df = provider.bars_to_frame(bars)
    assert list(df.columns) == DataProvider.columns
    assert df["close"].tolist() == [10.0, 11.0]
    assert provider.bars_to_frame([]).empty


def test_price_bar_rejects_inverted_range():
    with pytest.raises(ValueError):
        PriceBar(timestamp=TS, open=10, high=9, low=11, close=10)


def test_bar_cache_expires():
    clock = [0.0]
    cache = BarCache(ttl_seconds=60, clock=lambda: clock[0])
    provider = DataProvider(cache=cache)
    bars = provider.bars_from_payload([[TS, 10, 11, 9, 10.5, 1000]])

    provider.put("AAPL", bars)
    assert provider.get_bars("AAPL") == bars
    clock[0] = 61.0
    assert provider.get_bars("AAPL") is None
    assert DataProvider().get_bars("AAPL") is None
