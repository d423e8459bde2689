"""Plain data types shared by the analyzer, the handlers and the adapters.

Every value here is fetched fresh from a collaborator on each scan; none of
them are cached across runs. Persistence-side types (PendingDeletion, DmRecord)
live in janitor_store.models so the store layer stays independent of core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class RepoRef:
    """An ``owner/name`` pair identifying one repository."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, full_name: str) -> RepoRef:
        owner, _, name = full_name.strip().partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"Invalid repository {full_name!r}. Expected owner/name.")
        return cls(owner=owner, name=name)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Branch:
    name: str
    sha: str
    protected: bool = False


@dataclass(frozen=True)
class Commit:
    sha: str
    author: str
    date: datetime


@dataclass(frozen=True)
class IssueComment:
    id: int
    body: str
    user: str


@dataclass
class PullRequest:
    number: int
    title: str
    author: str
    created_at: datetime | None
    updated_at: datetime | None
    last_activity_at: datetime | None
    labels: set[str] = field(default_factory=set)
    head_ref: str = ""
    head_sha: str = ""
    base_branch: str = ""
    url: str = ""


@dataclass
class BranchAnalysis:
    """Result of analyze_branch, one per branch per scan.

    ``has_associated_pr`` is derived from ``associated_pr_number`` so the two
    can never disagree.
    """

    branch: Branch
    is_merged: bool
    associated_pr_number: int | None = None
    contributors: set[str] = field(default_factory=set)
    last_commit_date: datetime = EPOCH

    @property
    def has_associated_pr(self) -> bool:
        return self.associated_pr_number is not None


@dataclass(frozen=True)
class SafetyCheck:
    safe: bool
    reason: str | None = None


@dataclass
class ActionResult:
    """Outcome of one handler operation.

    Policy rejections (protected branch, stale sha, already processed) and
    transient collaborator errors both surface as ``success=False``; the
    ``error`` string carries the policy reason or the exception text.
    """

    success: bool
    action: str
    details: dict = field(default_factory=dict)
    error: str | None = None


def summarize(results: list[ActionResult]) -> dict[str, int]:
    successful = sum(1 for r in results if r.success)
    return {"total": len(results), "successful": successful, "failed": len(results) - successful}
