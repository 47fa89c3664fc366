"""
persistence/sqlite.py
---------------------
SQLite store for signals and performance records.

``signals.signal_hash`` is UNIQUE, so inserting the same hash twice is a
no-op; that is the atomic check-then-insert behind signal idempotency.
Performance records are completed with an optimistic ``outcome IS NULL``
guard so only one writer can ever close a record.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from models.signal import Signal
from models.trade_outcome import Outcome, PerformanceRecord
from utils.utils import ensure_utc

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS signals (
    id                    INTEGER PRIMARY KEY,
    signal_hash           TEXT NOT NULL UNIQUE,
    symbol                TEXT NOT NULL,
    signal_type           TEXT NOT NULL,
    confidence            INTEGER,
    created_at            TEXT NOT NULL,
    sent                  INTEGER NOT NULL DEFAULT 0,
    sent_at               TEXT,
    performance_record_id INTEGER,
    payload               TEXT          -- full Signal as JSON
);

CREATE INDEX IF NOT EXISTS idx_signals_symbol_sent ON signals (symbol, sent, sent_at);

CREATE TABLE IF NOT EXISTS performance_records (
    id                    INTEGER PRIMARY KEY,
    signal_hash           TEXT,
    symbol                TEXT NOT NULL,
    strategy              TEXT NOT NULL,
    signal_type           TEXT NOT NULL,
    predicted_probability REAL,
    confidence            INTEGER,
    entry_price           REAL NOT NULL,
    stop_loss             REAL NOT NULL,
    take_profit_price     REAL NOT NULL,
    take_profit_pct       REAL,
    outcome               TEXT,         -- NULL while open
    actual_return         REAL,
    holding_period_days   INTEGER,
    created_at            TEXT NOT NULL,
    completed_at          TEXT,
    notes                 TEXT
);

CREATE INDEX IF NOT EXISTS idx_perf_open ON performance_records (outcome, symbol);
"""


def _ts(dt: datetime) -> str:
    return ensure_utc(dt).isoformat(timespec="microseconds")


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLitePersistence:
    def __init__(self, db_path: str = "data/signals.db"):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self.conn.commit()
        self._lock = threading.RLock()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # ----------------------------- SIGNALS ------------------------------- #
    def insert_signal(self, signal: Signal) -> bool:
        """Insert if the hash is new. Returns False when it already existed."""
        with self._lock:
            cur = self.conn.execute(
                """
                INSERT OR IGNORE INTO signals
                    (signal_hash, symbol, signal_type, confidence, created_at, sent, sent_at,
                     performance_record_id, payload)
                VALUES (:hash, :symbol, :type, :confidence, :created_at, :sent, :sent_at, :perf_id, :payload)
                """,
                {
                    "hash": signal.signal_hash,
                    "symbol": signal.symbol,
                    "type": signal.signal_type.value,
                    "confidence": signal.confidence,
                    "created_at": _ts(signal.created_at),
                    "sent": int(signal.sent),
                    "sent_at": _ts(signal.sent_at) if signal.sent_at else None,
                    "perf_id": signal.performance_record_id,
                    "payload": signal.model_dump_json(),
                },
            )
            self.conn.commit()
            return cur.rowcount == 1

    def get_signal(self, signal_hash: str) -> Optional[Signal]:
        with self._lock:
            row = self.conn.execute("SELECT * FROM signals WHERE signal_hash = ?", (signal_hash,)).fetchone()
        if row is None:
            return None
        data = json.loads(row["payload"])
        data.update(
            sent=bool(row["sent"]),
            sent_at=row["sent_at"],
            performance_record_id=row["performance_record_id"],
        )
        return Signal.model_validate(data)

    def mark_signal_sent(self, signal_hash: str, sent_at: datetime) -> bool:
        with self._lock:
            cur = self.conn.execute(
                "UPDATE signals SET sent = 1, sent_at = ? WHERE signal_hash = ?",
                (_ts(sent_at), signal_hash),
            )
            self.conn.commit()
            return cur.rowcount == 1

    def link_performance_record(self, signal_hash: str, record_id: int) -> None:
        with self._lock:
            self.conn.execute(
                "UPDATE signals SET performance_record_id = ? WHERE signal_hash = ?",
                (record_id, signal_hash),
            )
            self.conn.commit()

    def last_sent_signal_at(self, symbol: str) -> Optional[datetime]:
        with self._lock:
            row = self.conn.execute(
                "SELECT MAX(sent_at) AS last FROM signals WHERE symbol = ? AND sent = 1",
                (symbol,),
            ).fetchone()
        return _dt(row["last"])

    def count_sent_signals_since(self, symbol: str, since: datetime) -> int:
        with self._lock:
            row = self.conn.execute(
                "SELECT COUNT(*) AS n FROM signals WHERE symbol = ? AND sent = 1 AND sent_at >= ?",
                (symbol, _ts(since)),
            ).fetchone()
        return int(row["n"])

    # ------------------------ PERFORMANCE RECORDS ------------------------ #
    def insert_performance_record(self, record: PerformanceRecord) -> int:
        with self._lock:
            cur = self.conn.execute(
                """
                INSERT INTO performance_records
                    (signal_hash, symbol, strategy, signal_type, predicted_probability, confidence,
                     entry_price, stop_loss, take_profit_price, take_profit_pct, created_at, notes)
                VALUES (:signal_hash, :symbol, :strategy, :signal_type, :predicted_probability, :confidence,
                        :entry_price, :stop_loss, :take_profit_price, :take_profit_pct, :created_at, :notes)
                """,
                {
                    "signal_hash": record.signal_hash,
                    "symbol": record.symbol,
                    "strategy": record.strategy,
                    "signal_type": record.signal_type,
                    "predicted_probability": record.predicted_probability,
                    "confidence": record.confidence,
                    "entry_price": record.entry_price,
                    "stop_loss": record.stop_loss,
                    "take_profit_price": record.take_profit_price,
                    "take_profit_pct": record.take_profit_pct,
                    "created_at": _ts(record.created_at),
                    "notes": record.notes,
                },
            )
            self.conn.commit()
            return int(cur.lastrowid)

    def open_performance_records(self) -> List[PerformanceRecord]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM performance_records WHERE outcome IS NULL ORDER BY symbol, id"
            ).fetchall()
        return [self._record_from_row(r) for r in rows]

    def complete_performance_record(self, record: PerformanceRecord) -> bool:
        """Write the outcome once. False if another writer already completed it."""
        if record.id is None or record.outcome is None:
            raise ValueError("record needs an id and an outcome to be completed")
        with self._lock:
            cur = self.conn.execute(
                """
                UPDATE performance_records
                   SET outcome = ?, actual_return = ?, holding_period_days = ?, completed_at = ?, notes = ?
                 WHERE id = ? AND outcome IS NULL
                """,
                (
                    record.outcome.value,
                    record.actual_return,
                    record.holding_period_days,
                    _ts(record.completed_at),
                    record.notes,
                    record.id,
                ),
            )
            self.conn.commit()
            return cur.rowcount == 1

    def completed_performance_records(self, since: Optional[datetime] = None) -> List[PerformanceRecord]:
        query = "SELECT * FROM performance_records WHERE outcome IS NOT NULL"
        params: tuple = ()
        if since is not None:
            query += " AND created_at >= ?"
            params = (_ts(since),)
        with self._lock:
            rows = self.conn.execute(query + " ORDER BY id", params).fetchall()
        return [self._record_from_row(r) for r in rows]

    def symbol_performance_records(self, symbol: str, since: datetime) -> List[PerformanceRecord]:
        """Open and completed records for one symbol, newest first."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM performance_records WHERE symbol = ? AND created_at >= ? "
                "ORDER BY created_at DESC, id DESC",
                (symbol, _ts(since)),
            ).fetchall()
        return [self._record_from_row(r) for r in rows]

    def purge_performance_records(self, before: datetime) -> int:
        """Delete completed records finished before ``before``; open ones are kept."""
        with self._lock:
            cur = self.conn.execute(
                "DELETE FROM performance_records WHERE outcome IS NOT NULL AND completed_at < ?",
                (_ts(before),),
            )
            self.conn.commit()
            return cur.rowcount

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> PerformanceRecord:
        return PerformanceRecord(
            id=row["id"],
            signal_hash=row["signal_hash"],
            symbol=row["symbol"],
            strategy=row["strategy"],
            signal_type=row["signal_type"],
            predicted_probability=row["predicted_probability"],
            confidence=row["confidence"],
            entry_price=row["entry_price"],
            stop_loss=row["stop_loss"],
            take_profit_price=row["take_profit_price"],
            take_profit_pct=row["take_profit_pct"],
            outcome=Outcome(row["outcome"]) if row["outcome"] else None,
            actual_return=row["actual_return"],
            holding_period_days=row["holding_period_days"],
            created_at=_dt(row["created_at"]),
            completed_at=_dt(row["completed_at"]),
            notes=row["notes"] or "",
        )
