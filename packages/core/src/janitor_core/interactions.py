"""Approval button payloads and the messages shown after a button click.

Each "delete" / "keep" button carries a base64-encoded JSON envelope::

    {"owner": ..., "repo": ..., "branch": ..., "request_id": ...}

so a callback endpoint can act on the click without any shared state. The
in-process PendingDeletion map is authoritative only for the process that sent
the message; ``resolve_interaction`` is the stateless path for everyone else.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from janitor_core.models import ActionResult, RepoRef

if TYPE_CHECKING:
    from janitor_core.branches import BranchAnalyzer
    from janitor_store.base import BaseDedupStore

logger = logging.getLogger(__name__)

APPROVE_ACTION_ID = "branch_delete_approve"
REJECT_ACTION_ID = "branch_delete_reject"


@dataclass(frozen=True)
class BranchPayload:
    owner: str
    repo: str
    branch: str
    request_id: str | None = None

    @property
    def repo_ref(self) -> RepoRef:
        return RepoRef(owner=self.owner, name=self.repo)


def encode_payload(owner: str, repo: str, branch: str, request_id: str | None = None) -> str:
    envelope = {"owner": owner, "repo": repo, "branch": branch}
    if request_id:
        envelope["request_id"] = request_id
    return base64.b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")


def decode_payload(value: str) -> BranchPayload | None:
    """Return the decoded envelope, or None if it is malformed."""
    try:
        data = json.loads(base64.b64decode(value, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    owner, repo, branch = data.get("owner"), data.get("repo"), data.get("branch")
    if not all(isinstance(v, str) and v for v in (owner, repo, branch)):
        return None
    request_id = data.get("request_id")
    return BranchPayload(owner=owner, repo=repo, branch=branch, request_id=request_id or None)


def response_message(result: ActionResult) -> str:
    """The text shown to the person who clicked, derived from the outcome."""
    branch = result.details.get("branch_name", "")
    repo = result.details.get("repo", "")
    if result.action == "deletion_rejected":
        return f"Got it! Branch `{branch}` in `{repo}` will be kept."
    if result.action == "branch_deletion":
        if result.success:
            return f"Branch `{branch}` in `{repo}` has been deleted."
        if result.details.get("reason"):
            return f"Cannot delete branch `{branch}`: {result.details['reason']}"
        return f"Failed to delete branch `{branch}`: {result.error}"
    return f"This request could not be processed: {result.error}"


def resolve_interaction(
    value: str,
    approved: bool,
    analyzer: BranchAnalyzer,
    github,
    dedup_store: BaseDedupStore,
) -> tuple[ActionResult, str]:
    """Act on a button click using only the payload envelope.

    Approval re-runs the full safety classifier before deleting; there is no
    expected sha here because a fresh commit is fine as long as the branch is
    still merged.
    """
    payload = decode_payload(value)
    if payload is None:
        logger.error("Invalid branch payload: %r", value)
        result = ActionResult(success=False, action="deletion_response", error="Invalid request data")
        return result, response_message(result)

    repo = payload.repo_ref
    details = {"branch_name": payload.branch, "repo": repo.full_name, "request_id": payload.request_id}

    if not approved:
        logger.info("Branch deletion rejected: %s in %s", payload.branch, repo)
        result = ActionResult(success=True, action="deletion_rejected", details=details)
        return result, response_message(result)

    try:
        check = analyzer.is_safe_to_delete(repo, payload.branch)
        if not check.safe:
            logger.warning("Branch deletion blocked by safety check: %s (%s)", payload.branch, check.reason)
            result = ActionResult(
                success=False, action="branch_deletion", details={**details, "reason": check.reason}, error=check.reason
            )
            return result, response_message(result)

        github.delete_branch(repo, payload.branch)
    except Exception as e:
        logger.error("Failed to delete branch %s in %s: %s", payload.branch, repo, e)
        result = ActionResult(success=False, action="branch_deletion", details=details, error=str(e))
        return result, response_message(result)

    # A branch recreated later under the same name must be announced afresh.
    dedup_store.clear_all(repo.owner, repo.name, payload.branch)
    logger.info("Branch %s deleted in %s", payload.branch, repo)
    result = ActionResult(success=True, action="branch_deletion", details=details)
    return result, response_message(result)
