"""RedisDedupStore: shared dedup records for scheduled runs on ephemeral hosts.

SETEX gives each record its 7-day expiry. An unreachable server means
"notify again", never an unsafe delete.

Keys are ``dm-sent:<owner>/<repo>/<branch>/<contributor>`` with each segment
percent-encoded; values are the JSON-encoded DmRecord.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone

import redis

from janitor_store.base import DM_TTL_SECONDS, BaseDedupStore, dm_key
from janitor_store.models import DmRecord

logger = logging.getLogger(__name__)

_SOCKET_TIMEOUT_SECONDS = 5


class RedisDedupStore(BaseDedupStore):
    """Dedup records in Redis. The client connects lazily on first command."""

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        if client is None and not url:
            raise ValueError("RedisDedupStore requires a Redis URL (REDIS_URL).")
        self._client = client or redis.Redis.from_url(
            url,
            socket_timeout=_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=_SOCKET_TIMEOUT_SECONDS,
            decode_responses=True,
        )

    def was_sent(self, owner: str, repo: str, branch: str, contributor: str) -> bool:
        try:
            return self._client.get(dm_key(owner, repo, branch, contributor)) is not None
        except Exception as e:
            # Fail open: without dedup the worst case is a repeated notification.
            logger.warning("Redis unavailable, skipping dedup check (%s): %s", type(e).__name__, e)
            return False

    def mark_sent(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        record = DmRecord(
            sent_at=datetime.now(timezone.utc).isoformat(),
            contributor=contributor,
            branch=branch,
            repo=f"{owner}/{repo}",
        )
        payload = json.dumps(asdict(record))
        try:
            self._client.setex(dm_key(owner, repo, branch, contributor), DM_TTL_SECONDS, payload)
        except Exception as e:
            logger.warning("Redis unavailable, skipping dedup mark (%s): %s", type(e).__name__, e)

    def clear(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        try:
            self._client.delete(dm_key(owner, repo, branch, contributor))
        except Exception as e:
            logger.warning("Redis unavailable, skipping dedup clear (%s): %s", type(e).__name__, e)

    def clear_all(self, owner: str, repo: str, branch: str) -> None:
        # Encoded segments hold no glob metacharacters and no "/", so the
        # prefix matches this branch only, never "branch/child" records.
        prefix = dm_key(owner, repo, branch, "")
        try:
            keys = list(self._client.scan_iter(match=prefix + "*"))
            if keys:
                self._client.delete(*keys)
        except Exception as e:
            logger.warning("Redis unavailable, skipping branch dedup clear (%s): %s", type(e).__name__, e)

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as e:
            logger.debug("Error closing Redis client: %s", e)
