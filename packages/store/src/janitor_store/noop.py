"""No-op dedup store, the default when no store is configured.

Every scan re-notifies contributors about still-present branches. Using a
NoOpDedupStore rather than None lets the workflow always call the store
without conditional checks.
"""

from __future__ import annotations

from janitor_store.base import BaseDedupStore


class NoOpDedupStore(BaseDedupStore):
    def was_sent(self, owner: str, repo: str, branch: str, contributor: str) -> bool:
        return False

    def mark_sent(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        pass

    def clear(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        pass

    def clear_all(self, owner: str, repo: str, branch: str) -> None:
        pass
