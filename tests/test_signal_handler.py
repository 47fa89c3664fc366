import logging
from unittest.mock import AsyncMock

import pytest

from core.signal_handler import LoggingDispatcher, handle_new_signal
from utils import event_bus


@pytest.mark.asyncio
async def test_successful_dispatch_marks_sent(store, make_signal, now):
    signal = make_signal()
    store.insert_signal(signal)
    dispatcher = AsyncMock()
    published = []
    event_bus.subscribe("signal_sent", published.append)
    try:
        assert await handle_new_signal(signal, store=store, dispatcher=dispatcher, now=now)
        await event_bus.drain()
    finally:
        event_bus.unsubscribe("signal_sent", published.append)

    dispatcher.dispatch.assert_awaited_once_with(signal)
    stored = store.get_signal(signal.signal_hash)
    assert stored.sent
    assert stored.sent_at == now
    assert published[0].sent


@pytest.mark.asyncio
async def test_failed_dispatch_leaves_signal_unsent(store, make_signal, now, caplog):
    signal = make_signal()
    store.insert_signal(signal)
    dispatcher = AsyncMock()
    dispatcher.dispatch.side_effect = ConnectionError("chat api down")

    with caplog.at_level(logging.ERROR):
        assert not await handle_new_signal(signal, store=store, dispatcher=dispatcher, now=now)

    assert not store.get_signal(signal.signal_hash).sent
    assert store.last_sent_signal_at("AAPL") is None
    assert "Failed to dispatch signal" in caplog.text


@pytest.mark.asyncio
async def test_logging_dispatcher(make_signal, caplog):
    with caplog.at_level(logging.INFO):
        await LoggingDispatcher().dispatch(make_signal(stop_loss=95.0, take_profit=115.0))
    assert "STRONG_BUY AAPL @ 100.00 conf 80%" in caplog.text
