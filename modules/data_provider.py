"""
data_provider.py
-----------------

Boundary between market-data collaborators and the signal engine.

Providers answer ``fetch_history`` with loosely-shaped JSON: a payload with
a ``data`` field holding either a list of lists (``[timestamp, open, high,
low, close, volume]``), a list of dictionaries with named attributes, or a
columnar mapping of equally long arrays. ``DataProvider`` converts any of
these into validated, immutable :class:`~models.price_bar.PriceBar` objects
once, so nothing downstream ever sees raw maps.

Rows that fail validation are dropped and logged; the caller decides
whether the remaining history is long enough to evaluate.

Example usage::

    provider = DataProvider()
    raw = await client.fetch_history("AAPL", days=100)
    bars = provider.bars_from_payload(raw)
    frame = provider.bars_to_frame(bars)

"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import pandas as pd
from pydantic import ValidationError

from models.price_bar import PriceBar

logger = logging.getLogger(__name__)


class MarketDataError(Exception):
    """A fetch from the market-data collaborator failed; safe to retry later."""


class MarketDataClient(Protocol):
    async def fetch_history(self, symbol: str, days: int) -> Any:
        ...

    async def fetch_latest_price(self, symbol: str) -> float:
        ...


class BarCache:
    """Per-symbol bar cache with a time-to-live, injected where needed."""

    def __init__(self, ttl_seconds: float = 300.0, clock=time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, List[PriceBar]]] = {}

    def put(self, symbol: str, bars: Sequence[PriceBar]) -> None:
        self._entries[symbol] = (self._clock(), list(bars))

    def get(self, symbol: str) -> Optional[List[PriceBar]]:
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        stored_at, bars = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[symbol]
            return None
        return bars


class DataProvider:
    """Convert raw kline payloads into validated ``PriceBar`` lists.

    The resulting frame from :meth:`bars_to_frame` has these columns,
    ordered by ascending timestamp:

    - ``timestamp``: timezone-aware UTC datetime
    - ``open``, ``high``, ``low``, ``close``: float prices
    - ``volume``: float traded volume
    """

    columns: List[str] = ["timestamp", "open", "high", "low", "close", "volume"]

    def __init__(self, cache: Optional[BarCache] = None) -> None:
        self.cache = cache

    def bars_from_payload(self, data: Any) -> List[PriceBar]:
        """Return validated bars from a raw payload.

        Parameters
        ----------
        data: Any
            Either the decoded JSON response (``{"data": ...}``) or the bare
            ``data`` value. Supported shapes::

                [[timestamp, open, high, low, close, volume], ...]
                [{"timestamp": ..., "open": ..., ...}, ...]
                {"timestamp": [...], "open": [...], ..., "volume": [...]}

        Returns
        -------
        List[PriceBar]
            Bars in the order they were received. Unknown shapes give an
            empty list.
        """
        raw = data.get("data", data) if isinstance(data, dict) else data

        if isinstance(raw, dict):
            rows = self._rows_from_columns(raw)
        elif isinstance(raw, list) and raw and isinstance(raw[0], (list, tuple)):
            rows = [dict(zip(self.columns, row)) for row in raw]
        elif isinstance(raw, list) and raw and isinstance(raw[0], dict):
            rows = [self._normalize_keys(row) for row in raw]
        else:
            return []

        bars: List[PriceBar] = []
        for row in rows:
            try:
                bars.append(PriceBar(**row))
            except (ValidationError, TypeError) as exc:
                logger.warning("Dropping malformed bar %s: %s", row, exc)
        return bars

    def bars_to_frame(self, bars: Iterable[PriceBar]) -> pd.DataFrame:
        rows = [bar.model_dump() for bar in bars]
        if not rows:
            return pd.DataFrame(columns=self.columns)
        df = pd.DataFrame(rows, columns=self.columns)
        return df.sort_values("timestamp").reset_index(drop=True)

    # ---------------------------- cache ---------------------------------- #
    def put(self, symbol: str, bars: Sequence[PriceBar]) -> None:
        if self.cache is not None:
            self.cache.put(symbol, bars)

    def get_bars(self, symbol: str) -> Optional[List[PriceBar]]:
        return self.cache.get(symbol) if self.cache is not None else None

    # ---------------------------- helpers -------------------------------- #
    def _rows_from_columns(self, raw: Dict[str, Any]) -> List[Dict[str, Any]]:
        raw = self._normalize_keys(raw)
        series = [raw.get(col) for col in self.columns]
        if any(not isinstance(s, list) for s in series):
            return []
        if len({len(s) for s in series}) != 1:
            logger.warning("Columnar payload has ragged columns; ignoring it")
            return []
        return [dict(zip(self.columns, values)) for values in zip(*series)]

    @staticmethod
    def _normalize_keys(row: Dict[str, Any]) -> Dict[str, Any]:
        aliases = {"date": "timestamp", "time": "timestamp", "t": "timestamp",
                   "o": "open", "h": "high", "l": "low", "c": "close", "v": "volume"}
        return {aliases.get(k, k): v for k, v in row.items()}
