"""Persistence-side data models.

Decoupled from janitor_core so the store layer can be used independently and
janitor_core depends only on these plain types, never on a backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DeletionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SentMessage:
    """Where a chat notification landed, so it can be updated later."""

    channel: str
    ts: str


@dataclass
class PendingDeletion:
    """An outstanding human-approval request for one manually merged branch."""

    id: str
    owner: str
    repo: str
    branch_name: str
    contributors: list[str] = field(default_factory=list)
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: DeletionStatus = DeletionStatus.PENDING
    messages: list[SentMessage] = field(default_factory=list)

    @property
    def repo_full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class DmRecord:
    """A "notification already sent" fact, keyed by (owner, repo, branch, contributor)."""

    sent_at: str  # ISO-8601 UTC timestamp
    contributor: str
    branch: str
    repo: str  # owner/name
