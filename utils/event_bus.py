# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A super-light pub/sub used to hand sent signals and completed outcomes
to whoever is listening (notifiers, dashboards, tests).

Inside a running event loop, events are queued and delivered by a background
worker task. Outside a loop they are delivered inline.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

_Handler = Callable[[object], Union[Awaitable[None], None]]


class _EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)
        self._q: Optional[asyncio.Queue[tuple[str, object]]] = None
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> None:
        self._subs[topic].append(fn)

    def unsubscribe(self, topic: str, fn: _Handler) -> None:
        if fn in self._subs.get(topic, []):
            self._subs[topic].remove(fn)

    def clear(self) -> None:
        self._subs.clear()

    def publish(self, topic: str, payload: object) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver_sync(topic, payload)
            return

        if self._loop is not loop or self._task is None or self._task.done():
            self._loop = loop
            self._q = asyncio.Queue()
            self._task = loop.create_task(self._worker(self._q))
        self._q.put_nowait((topic, payload))

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        if self._q is not None and self._loop is asyncio.get_running_loop():
            await self._q.join()

    # -------------------------------------------------------------- #
    def _deliver_sync(self, topic: str, payload: object) -> None:
        for fn in list(self._subs.get(topic, [])):
            try:
                res = fn(payload)
                if asyncio.iscoroutine(res):
                    asyncio.run(res)
            except Exception:
                logger.exception("event_bus handler failed for topic %s", topic)

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            topic, payload = await queue.get()
            try:
                for fn in list(self._subs.get(topic, [])):
                    try:
                        res = fn(payload)
                        if asyncio.iscoroutine(res):
                            await res
                    except Exception:
                        logger.exception("event_bus handler failed for topic %s", topic)
            finally:
                queue.task_done()


# singleton – import this everywhere
BUS = _EventBus()

subscribe = BUS.subscribe
unsubscribe = BUS.unsubscribe
publish = BUS.publish
drain = BUS.drain
