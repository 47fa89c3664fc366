from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from models.signal import Signal
from modules.persistence.sqlite import SQLitePersistence
from utils.event_bus import publish
from utils.utils import utc_now

logger = logging.getLogger(__name__)


class BaseDispatcher(ABC):
    """Delivery collaborator: receives fully-populated signals, formats and sends them."""

    @abstractmethod
    async def dispatch(self, signal: Signal) -> None:
        raise NotImplementedError


class LoggingDispatcher(BaseDispatcher):
    """Default dispatcher that only writes the signal to the log."""

    async def dispatch(self, signal: Signal) -> None:
        logger.info(
            "%s %s @ %.2f conf %d%% SL %s TP %s | %s",
            signal.tier.value, signal.symbol, signal.entry_price, signal.confidence,
            signal.stop_loss, signal.take_profit, signal.reason,
        )


async def handle_new_signal(
    signal: Signal,
    *,
    store: SQLitePersistence,
    dispatcher: Optional[BaseDispatcher] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Hand a persisted signal to the dispatcher and mark it sent on success."""
    dispatcher = dispatcher or LoggingDispatcher()

    try:
        await dispatcher.dispatch(signal)
    except Exception:
        logger.exception("Failed to dispatch signal: %s", signal.signal_hash)
        return False

    sent_at = now or utc_now()
    store.mark_signal_sent(signal.signal_hash, sent_at)
    logger.info("🚀 Dispatched %s signal for %s", signal.signal_type.value, signal.symbol)
    publish("signal_sent", signal.model_copy(update={"sent": True, "sent_at": sent_at}))
    return True
