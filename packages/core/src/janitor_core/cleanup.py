"""Automatic deletion of branches merged through a pull request."""

from __future__ import annotations

import logging

from janitor_core.branches import BranchAnalyzer
from janitor_core.config import BotConfig
from janitor_core.models import ActionResult, RepoRef, summarize
from janitor_store.base import BaseDedupStore
from janitor_store.noop import NoOpDedupStore

logger = logging.getLogger(__name__)


class MergedBranchCleaner:
    def __init__(
        self,
        github,
        config: BotConfig,
        dry_run: bool = False,
        dedup_store: BaseDedupStore | None = None,
        analyzer: BranchAnalyzer | None = None,
    ):
        self.github = github
        self.config = config
        self.dry_run = dry_run
        self.dedup_store = dedup_store or NoOpDedupStore()
        self.analyzer = analyzer or BranchAnalyzer(github, config)

    def cleanup_merged_pr_branch(self, repo: RepoRef, branch_name: str, expected_sha: str) -> ActionResult:
        """Delete ``branch_name`` if it is still merged and still at ``expected_sha``."""
        logger.info("Attempting cleanup of merged branch %s in %s (sha %s)", branch_name, repo, expected_sha)
        details = {"branch_name": branch_name, "sha": expected_sha, "repo": repo.full_name}

        try:
            check = self.analyzer.is_safe_to_delete(repo, branch_name, expected_sha)
        except Exception as e:
            logger.error("Safety check failed for %s in %s: %s", branch_name, repo, e)
            return ActionResult(success=False, action="branch_cleanup", details=details, error=str(e))

        if not check.safe:
            logger.warning("Branch deletion blocked by safety check: %s (%s)", branch_name, check.reason)
            return ActionResult(
                success=False, action="branch_cleanup", details={**details, "reason": check.reason}, error=check.reason
            )

        if self.dry_run:
            logger.info("[DRY RUN] Would delete merged branch %s in %s", branch_name, repo)
            return ActionResult(success=True, action="branch_cleanup_dry_run", details={**details, "dry_run": True})

        try:
            self.github.delete_branch(repo, branch_name)
        except Exception as e:
            logger.error("Failed to delete branch %s in %s: %s", branch_name, repo, e)
            return ActionResult(success=False, action="branch_cleanup", details=details, error=str(e))

        self.dedup_store.clear_all(repo.owner, repo.name, branch_name)
        logger.info("Deleted merged branch %s in %s", branch_name, repo)
        return ActionResult(success=True, action="branch_cleanup", details=details)

    def scan_and_cleanup(self, repo: RepoRef) -> list[ActionResult]:
        logger.info("Scanning %s for PR-merged branches to clean up", repo)
        try:
            analyses = self.analyzer.find_pr_merged_branches(repo)
        except Exception as e:
            logger.error("Error scanning %s for PR-merged branches: %s", repo, e)
            return [ActionResult(success=False, action="branch_scan", details={"repo": repo.full_name}, error=str(e))]

        logger.info("Found %d PR-merged branches still present in %s", len(analyses), repo)
        # The analysis sha becomes the expected sha: a push since the scan blocks deletion.
        return [self.cleanup_merged_pr_branch(repo, a.branch.name, a.branch.sha) for a in analyses]

    def cleanup_for_pull_request_event(self, event: dict) -> ActionResult | None:
        """Handle a ``pull_request`` webhook / Actions event payload.

        Returns None when the event is not a merged, same-repository PR or is
        missing the fields needed to find the branch.
        """
        if not isinstance(event, dict):
            logger.debug("Ignoring event payload of type %s", type(event).__name__)
            return None
        pr = event.get("pull_request") or {}
        if event.get("action") != "closed":
            logger.debug("Ignoring pull_request event with action %r", event.get("action"))
            return None
        if not pr.get("merged"):
            logger.debug("PR #%s closed but not merged, skipping", pr.get("number"))
            return None

        head = pr.get("head") or {}
        head_repo = head.get("repo") or {}
        if head_repo.get("fork"):
            logger.debug("Skipping fork branch %s", head.get("ref"))
            return None

        repository = event.get("repository") or {}
        owner = (repository.get("owner") or {}).get("login")
        name = repository.get("name")
        branch_name, sha = head.get("ref"), head.get("sha")
        if not (owner and name and branch_name and sha):
            logger.debug("Event for PR #%s lacks repository or head details, skipping", pr.get("number"))
            return None

        repo = RepoRef(owner=owner, name=name)
        logger.info("PR #%s merged in %s, attempting branch cleanup", pr.get("number"), repo)
        return self.cleanup_merged_pr_branch(repo, branch_name, sha)


def scan_and_cleanup_all(
    github,
    config: BotConfig,
    repos: list[RepoRef],
    dry_run: bool = False,
    dedup_store: BaseDedupStore | None = None,
) -> list[ActionResult]:
    cleaner = MergedBranchCleaner(github, config, dry_run=dry_run, dedup_store=dedup_store)
    results: list[ActionResult] = []
    for repo in repos:
        results.extend(cleaner.scan_and_cleanup(repo))
    totals = summarize(results)
    logger.info(
        "PR-merged branch cleanup complete: %d action(s), %d successful, %d failed",
        totals["total"],
        totals["successful"],
        totals["failed"],
    )
    return results
