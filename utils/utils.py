"""
utils/utils.py
--------------
Small time and arithmetic helpers shared across modules.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hour_bucket(dt: datetime) -> str:
    return ensure_utc(dt).strftime("%Y%m%d%H")


def pct_change(start: float, end: float) -> float:
    """Percent move from ``start`` to ``end``; 0 when ``start`` is 0."""
    if start == 0:
        return 0.0
    return (end - start) / start * 100
