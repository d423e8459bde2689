"""SQLiteDedupStore: local file-based dedup records for single-host cron runs.

Schema:
  dm_sent  one row per (owner, repo, branch, contributor) with an expiry
           timestamp. Expired rows are ignored on read and purged on write.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone

from janitor_store.base import DM_TTL_SECONDS, BaseDedupStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS dm_sent (
    owner        TEXT NOT NULL,
    repo         TEXT NOT NULL,
    branch       TEXT NOT NULL,
    contributor  TEXT NOT NULL,
    sent_at      TEXT NOT NULL,
    expires_at   REAL NOT NULL,
    PRIMARY KEY (owner, repo, branch, contributor)
);
CREATE INDEX IF NOT EXISTS idx_dm_sent_expiry ON dm_sent (expires_at);
"""


class SQLiteDedupStore(BaseDedupStore):
    """Stores dedup records in a local SQLite database file.

    The database path defaults to `.janitor.db` in the current working
    directory. Configure via .janitor.yml: `store_path: /path/to/janitor.db`.
    """

    def __init__(self, db_path: str = ".janitor.db", ttl_seconds: int = DM_TTL_SECONDS):
        self._ttl = ttl_seconds
        self._conn = sqlite3.connect(db_path)
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def was_sent(self, owner: str, repo: str, branch: str, contributor: str) -> bool:
        try:
            row = self._conn.execute(
                "SELECT 1 FROM dm_sent WHERE owner=? AND repo=? AND branch=? AND contributor=? AND expires_at > ?",
                (owner, repo, branch, contributor, time.time()),
            ).fetchone()
        except sqlite3.Error as e:
            logger.warning("SQLiteDedupStore.was_sent() failed: %s", e)
            return False
        return row is not None

    def mark_sent(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        now = time.time()
        try:
            self._conn.execute("DELETE FROM dm_sent WHERE expires_at <= ?", (now,))
            self._conn.execute(
                """
                INSERT OR REPLACE INTO dm_sent
                  (owner, repo, branch, contributor, sent_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (owner, repo, branch, contributor, datetime.now(timezone.utc).isoformat(), now + self._ttl),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            logger.warning("SQLiteDedupStore.mark_sent() failed: %s", e)

    def clear(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        self._delete(
            "DELETE FROM dm_sent WHERE owner=? AND repo=? AND branch=? AND contributor=?",
            (owner, repo, branch, contributor),
        )

    def clear_all(self, owner: str, repo: str, branch: str) -> None:
        self._delete("DELETE FROM dm_sent WHERE owner=? AND repo=? AND branch=?", (owner, repo, branch))

    def close(self) -> None:
        self._conn.close()

    def _delete(self, sql: str, params: tuple) -> None:
        try:
            self._conn.execute(sql, params)
            self._conn.commit()
        except sqlite3.Error as e:
            logger.warning("SQLiteDedupStore delete failed: %s", e)
