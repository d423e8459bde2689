"""Abstract store interfaces.

Two independent concerns live here:

- BaseDedupStore remembers which contributors were already notified about a
  branch so repeated scans do not spam them. It is best-effort: every
  implementation must fail open (log and report "no record") so that branch
  safety never depends on it.
- BasePendingStore holds outstanding approval requests keyed by request token.
  The in-process map is the default; a durable backend can be swapped in
  without touching the workflow.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING
from urllib.parse import quote

if TYPE_CHECKING:
    from janitor_store.models import DeletionStatus, PendingDeletion

DM_TTL_SECONDS = 7 * 24 * 60 * 60


class BaseDedupStore(ABC):
    """Time-bounded record of sent notifications.

    Records expire automatically after ``DM_TTL_SECONDS`` even when nobody
    clears them. None of these methods may raise.
    """

    @abstractmethod
    def was_sent(self, owner: str, repo: str, branch: str, contributor: str) -> bool:
        """Return True if a live record exists. False on any store error."""

    @abstractmethod
    def mark_sent(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        """Record that a notification was sent. No-op on store error."""

    @abstractmethod
    def clear(self, owner: str, repo: str, branch: str, contributor: str) -> None:
        """Forget one contributor's record for a branch."""

    @abstractmethod
    def clear_all(self, owner: str, repo: str, branch: str) -> None:
        """Forget every record for a branch (after deletion or recreation)."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        The default is a no-op, so callers can always call close().
        """


class BasePendingStore(ABC):
    @abstractmethod
    def get(self, request_id: str) -> PendingDeletion | None:
        """Return the request or None if unknown."""

    @abstractmethod
    def put(self, pending: PendingDeletion) -> None:
        """Insert a new request. Tokens are unique, so this never overwrites."""

    @abstractmethod
    def update_if_pending(self, request_id: str, status: DeletionStatus) -> bool:
        """Move a request out of ``pending``.

        Returns False when the request is unknown or already resolved, which
        is what gives a request its at-most-once consumption.
        """

    @abstractmethod
    def list(self) -> list[PendingDeletion]:
        """Return every known request regardless of status."""


def dm_key(owner: str, repo: str, branch: str, contributor: str) -> str:
    """Build the record key. Each segment is percent-encoded, so none contains '/'."""
    segments = "/".join(quote(part, safe="") for part in (owner, repo, branch, contributor))
    return f"dm-sent:{segments}"
