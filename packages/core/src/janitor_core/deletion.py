"""Human-approved deletion of manually merged branches.

A branch merged without a pull request may still be wanted, so instead of
deleting it the workflow asks its recent contributors over Slack. Each request
gets an opaque token; the first "delete" or "keep" answer for a token wins and
every later answer is refused.

Failed-but-approved deletions stay retryable: a request only leaves
``pending`` when the branch is actually deleted, the safety check rejects it,
or someone chooses to keep it.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from janitor_core.branches import BranchAnalyzer
from janitor_core.config import BotConfig
from janitor_core.interactions import response_message
from janitor_core.models import ActionResult, RepoRef, summarize
from janitor_store.base import BaseDedupStore, BasePendingStore
from janitor_store.memory import InMemoryPendingStore
from janitor_store.models import DeletionStatus, PendingDeletion
from janitor_store.noop import NoOpDedupStore

logger = logging.getLogger(__name__)


def is_bot_identity(login: str) -> bool:
    """Automation accounts (``dependabot[bot]`` etc.) cannot approve anything."""
    return login.lower().endswith("[bot]")


class DeletionRequestWorkflow:
    def __init__(
        self,
        github,
        notifier,
        config: BotConfig,
        dedup_store: BaseDedupStore | None = None,
        pending_store: BasePendingStore | None = None,
        analyzer: BranchAnalyzer | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.github = github
        self.notifier = notifier
        self.config = config
        self.dedup_store = dedup_store or NoOpDedupStore()
        self.pending_store = pending_store or InMemoryPendingStore()
        self.analyzer = analyzer or BranchAnalyzer(github, config)
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    def process_repository(self, repo: RepoRef) -> list[ActionResult]:
        logger.info("Processing %s for manual merges", repo)
        try:
            analyses = self.analyzer.find_manually_merged_branches(repo)
        except Exception as e:
            logger.error("Error scanning %s for manual merges: %s", repo, e)
            return [ActionResult(success=False, action="manual_merge_scan", details={"repo": repo.full_name}, error=str(e))]

        logger.info("Found %d manually merged branches in %s", len(analyses), repo)
        results: list[ActionResult] = []
        for analysis in analyses:
            branch_name = analysis.branch.name
            try:
                result = self.request_deletion_permission(repo, branch_name, sorted(analysis.contributors))
            except Exception as e:
                logger.error("Error requesting deletion of %s in %s: %s", branch_name, repo, e)
                result = ActionResult(
                    success=False,
                    action="deletion_request_sent",
                    details={"branch_name": branch_name, "repo": repo.full_name},
                    error=str(e),
                )
            results.append(result)
        return results

    def request_deletion_permission(self, repo: RepoRef, branch_name: str, contributors: list[str]) -> ActionResult:
        """Ask every human contributor for permission to delete ``branch_name``.

        Succeeds when at least one message actually went out. Contributors
        already notified within the dedup window are skipped, not re-sent.
        """
        humans = list(dict.fromkeys(c for c in contributors if not is_bot_identity(c)))
        logger.info("Requesting permission to delete %s in %s from %s", branch_name, repo, ", ".join(humans))

        details: dict = {"branch_name": branch_name, "repo": repo.full_name, "contributors": humans}
        if not humans:
            return ActionResult(
                success=False, action="deletion_request_sent", details=details, error="No human contributors to notify"
            )

        request_id = self._new_id()
        pending = PendingDeletion(
            id=request_id,
            owner=repo.owner,
            repo=repo.name,
            branch_name=branch_name,
            contributors=humans,
        )
        self.pending_store.put(pending)

        try:
            skipped, unreachable = self._send_requests(repo, branch_name, humans, pending)
        except Exception:
            # Without a sent message nobody can ever answer this request.
            if not pending.messages:
                self.pending_store.update_if_pending(request_id, DeletionStatus.EXPIRED)
            raise

        sent = len(pending.messages)
        details.update(
            request_id=request_id,
            messages_sent=sent,
            skipped_duplicates=len(skipped),
            unreachable=unreachable,
        )
        if sent:
            return ActionResult(success=True, action="deletion_request_sent", details=details)

        # Nobody holds a button for this token, so it can never be answered.
        self.pending_store.update_if_pending(request_id, DeletionStatus.EXPIRED)
        if unreachable:
            error = "No messages could be sent - no reachable chat identity for: " + ", ".join(unreachable)
        else:
            error = "All contributors were already notified"
        return ActionResult(success=False, action="deletion_request_sent", details=details, error=error)

    def _send_requests(
        self, repo: RepoRef, branch_name: str, contributors: list[str], pending: PendingDeletion
    ) -> tuple[list[str], list[str]]:
        """Message each contributor, appending what was sent to ``pending.messages``.

        Returns the contributors skipped as already notified and those that
        could not be reached.
        """
        skipped: list[str] = []
        unreachable: list[str] = []
        for contributor in contributors:
            if self.dedup_store.was_sent(repo.owner, repo.name, branch_name, contributor):
                logger.info("Already notified %s about %s, skipping", contributor, branch_name)
                skipped.append(contributor)
                continue

            message = None
            try:
                if self.notifier.resolve_user(contributor) is not None:
                    message = self.notifier.send_branch_deletion_request(
                        contributor, repo.owner, repo.name, branch_name, pending.id
                    )
            except Exception as e:
                logger.error("Error sending deletion request for %s to %s: %s", branch_name, contributor, e)
            if message is None:
                logger.warning("Could not send deletion request for %s to %s", branch_name, contributor)
                unreachable.append(contributor)
                continue

            pending.messages.append(message)
            self.dedup_store.mark_sent(repo.owner, repo.name, branch_name, contributor)
            logger.info("Sent deletion request for %s to %s", branch_name, contributor)
        return skipped, unreachable

    def handle_deletion_response(self, request_id: str, approved: bool) -> ActionResult:
        pending = self.pending_store.get(request_id)
        if pending is None:
            logger.warning("Deletion request %s not found", request_id)
            return ActionResult(
                success=False,
                action="deletion_response",
                details={"request_id": request_id},
                error="Request not found or expired",
            )

        if pending.status is not DeletionStatus.PENDING:
            logger.warning("Deletion request %s already processed (%s)", request_id, pending.status.value)
            return ActionResult(
                success=False,
                action="deletion_response",
                details={"request_id": request_id, "status": pending.status.value},
                error="Request already processed",
            )

        repo = RepoRef(owner=pending.owner, name=pending.repo)
        details = {"request_id": request_id, "branch_name": pending.branch_name, "repo": repo.full_name}

        if not approved:
            self.pending_store.update_if_pending(request_id, DeletionStatus.REJECTED)
            logger.info("Deletion of %s in %s rejected by user", pending.branch_name, repo)
            return self._finish(pending, ActionResult(success=True, action="deletion_rejected", details=details))

        try:
            # No expected sha: new commits are fine as long as the branch is still merged.
            check = self.analyzer.is_safe_to_delete(repo, pending.branch_name)
        except Exception as e:
            logger.error("Safety check failed for %s in %s: %s", pending.branch_name, repo, e)
            return ActionResult(success=False, action="branch_deletion", details=details, error=str(e))

        if not check.safe:
            self.pending_store.update_if_pending(request_id, DeletionStatus.REJECTED)
            logger.warning(
                "Deletion of %s blocked by safety check after approval: %s", pending.branch_name, check.reason
            )
            return self._finish(
                pending,
                ActionResult(
                    success=False,
                    action="branch_deletion",
                    details={**details, "reason": check.reason},
                    error=check.reason,
                ),
            )

        try:
            self.github.delete_branch(repo, pending.branch_name)
        except Exception as e:
            logger.error("Failed to delete %s in %s after approval: %s", pending.branch_name, repo, e)
            return ActionResult(success=False, action="branch_deletion", details=details, error=str(e))

        self.pending_store.update_if_pending(request_id, DeletionStatus.APPROVED)
        self.dedup_store.clear_all(repo.owner, repo.name, pending.branch_name)
        logger.info("Deleted manually merged branch %s in %s after approval", pending.branch_name, repo)
        return self._finish(pending, ActionResult(success=True, action="branch_deletion", details=details))

    def _finish(self, pending: PendingDeletion, result: ActionResult) -> ActionResult:
        """Replace the buttons in every sent message with the outcome."""
        text = response_message(result)
        for message in pending.messages:
            self.notifier.update_message(message.channel, message.ts, text)
        return result

    def get_pending_deletions(self) -> list[PendingDeletion]:
        return [p for p in self.pending_store.list() if p.status is DeletionStatus.PENDING]

    def get_pending_deletion(self, request_id: str) -> PendingDeletion | None:
        return self.pending_store.get(request_id)


def handle_manual_merges(
    github,
    notifier,
    config: BotConfig,
    repos: list[RepoRef],
    dedup_store: BaseDedupStore | None = None,
    workflow: DeletionRequestWorkflow | None = None,
) -> list[ActionResult]:
    workflow = workflow or DeletionRequestWorkflow(github, notifier, config, dedup_store=dedup_store)
    results: list[ActionResult] = []
    for repo in repos:
        results.extend(workflow.process_repository(repo))
    totals = summarize(results)
    logger.info(
        "Manual merge processing complete: %d action(s), %d successful, %d failed",
        totals["total"],
        totals["successful"],
        totals["failed"],
    )
    return results
