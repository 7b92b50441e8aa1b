"""
Scan History — bounded local record of completed scans.

Every scan handed to the telemetry sink lands here. Each entry carries
a SHA-256 fingerprint of its content so clients can refer to a stored
scan without exposing its row id.

Retention mirrors what a browser extension can afford to keep: the
newest HISTORY_MAX_ENTRIES scans, none older than HISTORY_MAX_AGE_DAYS.
Pruning runs after every insert.
"""

import hashlib
import json
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from patternshield.config import settings
from patternshield.logging import get_logger
from patternshield.models import ScanResult
from patternshield.rules import RULESET_VERSION

logger = get_logger("history")


class ScanHistory:
    """Append-and-prune scan log backed by SQLite."""

    def __init__(
        self,
        db_path: str = "patternshield_history.db",
        max_entries: int = 100,
        max_age_days: int = 7,
    ):
        self.db_path = db_path
        self.max_entries = max_entries
        self.max_age_days = max_age_days
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scan_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    hash TEXT NOT NULL UNIQUE,
                    source_ref TEXT NOT NULL,
                    scan_mode TEXT NOT NULL,
                    risk_score INTEGER NOT NULL,
                    patterns_found INTEGER NOT NULL,
                    categories TEXT NOT NULL,
                    data TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    ruleset_version TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_history_source
                ON scan_history(source_ref)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_history_timestamp
                ON scan_history(timestamp)
            """)
            conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    @staticmethod
    def _serialize(result: ScanResult) -> str:
        return json.dumps(result.to_dict(), default=str, sort_keys=True)

    @classmethod
    def entry_hash(cls, result: ScanResult) -> str:
        """The hash record() stores this result under."""
        data_str = cls._serialize(result)
        return hashlib.sha256(
            f"{result.source_ref}{result.timestamp}{data_str}".encode()
        ).hexdigest()

    def record(self, result: ScanResult) -> str:
        """
        Store a scan result and prune. Returns the entry's SHA-256 hash.

        Recording the same result twice is a no-op returning the same hash.
        """
        data_str = self._serialize(result)
        entry_hash = self.entry_hash(result)

        with self._lock:
            with self._get_conn() as conn:
                conn.execute(
                    """INSERT OR IGNORE INTO scan_history
                       (hash, source_ref, scan_mode, risk_score, patterns_found,
                        categories, data, timestamp, ruleset_version)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        entry_hash,
                        result.source_ref,
                        result.scan_mode,
                        result.risk_score,
                        result.patterns_found,
                        json.dumps(result.categories),
                        data_str,
                        result.timestamp,
                        RULESET_VERSION,
                    ),
                )
                conn.commit()
                removed = self._prune(conn)

        logger.info(
            "Scan recorded",
            extra={
                "history_hash": entry_hash[:16],
                "source_ref": result.source_ref,
                "risk_score": result.risk_score,
            },
        )
        if removed:
            logger.debug("Pruned %d history entries", removed)
        return entry_hash

    def prune(self, now: Optional[datetime] = None) -> int:
        """Apply retention. Returns the number of entries removed."""
        with self._lock:
            with self._get_conn() as conn:
                return self._prune(conn, now)

    def _prune(self, conn: sqlite3.Connection, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=self.max_age_days)).isoformat()

        expired = conn.execute(
            "DELETE FROM scan_history WHERE timestamp < ?", (cutoff,),
        ).rowcount
        overflow = conn.execute(
            """DELETE FROM scan_history WHERE id NOT IN (
                   SELECT id FROM scan_history ORDER BY id DESC LIMIT ?
               )""",
            (self.max_entries,),
        ).rowcount
        conn.commit()
        return expired + overflow

    def get_recent(self, limit: int = 20, source_ref: Optional[str] = None) -> list[dict]:
        """Newest first, optionally for one source."""
        with self._get_conn() as conn:
            if source_ref:
                rows = conn.execute(
                    """SELECT hash, source_ref, scan_mode, risk_score, patterns_found,
                              categories, data, timestamp, ruleset_version
                       FROM scan_history WHERE source_ref = ?
                       ORDER BY id DESC LIMIT ?""",
                    (source_ref, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT hash, source_ref, scan_mode, risk_score, patterns_found,
                              categories, data, timestamp, ruleset_version
                       FROM scan_history ORDER BY id DESC LIMIT ?""",
                    (limit,),
                ).fetchall()

        return [
            {
                "hash": r[0], "source_ref": r[1], "scan_mode": r[2],
                "risk_score": r[3], "patterns_found": r[4],
                "categories": json.loads(r[5]), "result": json.loads(r[6]),
                "timestamp": r[7], "ruleset_version": r[8],
            }
            for r in rows
        ]

    def get_count(self) -> int:
        with self._get_conn() as conn:
            row = conn.execute("SELECT COUNT(*) FROM scan_history").fetchone()
            return row[0] if row else 0


def get_scan_history() -> ScanHistory:
    """Factory — reads db path and retention from config."""
    return ScanHistory(
        db_path=settings.HISTORY_DB_PATH,
        max_entries=settings.HISTORY_MAX_ENTRIES,
        max_age_days=settings.HISTORY_MAX_AGE_DAYS,
    )
