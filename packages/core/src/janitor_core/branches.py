"""Branch analysis and the deletion safety classifier."""

from __future__ import annotations

import logging

from janitor_core.config import BotConfig, is_excluded_branch, is_protected_branch
from janitor_core.models import EPOCH, Branch, BranchAnalysis, RepoRef, SafetyCheck

logger = logging.getLogger(__name__)

# Contributors are sampled from this many of the newest commits on a branch.
CONTRIBUTOR_COMMIT_WINDOW = 10


class BranchAnalyzer:
    def __init__(self, github, config: BotConfig):
        self.github = github
        self.config = config

    def analyze_branch(self, repo: RepoRef, branch_name: str) -> BranchAnalysis | None:
        """Classify one branch, or return None when there is nothing to do.

        None covers protected/excluded names, the default branch, a branch
        that vanished mid-scan, and any collaborator error (the scan carries on).
        """
        logger.debug("Analyzing branch %s in %s", branch_name, repo)

        if is_protected_branch(branch_name, self.config) or is_excluded_branch(branch_name, self.config):
            logger.debug("Skipping protected/excluded branch %s", branch_name)
            return None

        try:
            default_branch = self.github.get_default_branch(repo)
            if branch_name == default_branch:
                return None

            branch_sha = self.github.get_branch_sha(repo, branch_name)
            if not branch_sha:
                logger.warning("Could not get sha of branch %s in %s", branch_name, repo)
                return None

            is_merged = self.github.is_branch_merged(repo, branch_name, default_branch)
            pr_number = self.github.find_pull_request_for_branch(repo, branch_name)
            commits = self.github.get_branch_commits(repo, branch_name, CONTRIBUTOR_COMMIT_WINDOW)
        except Exception as e:
            logger.error("Error analyzing branch %s in %s: %s", branch_name, repo, e)
            return None

        return BranchAnalysis(
            branch=Branch(name=branch_name, sha=branch_sha, protected=False),
            is_merged=is_merged,
            associated_pr_number=pr_number,
            contributors={c.author for c in commits},
            last_commit_date=max((c.date for c in commits), default=EPOCH),
        )

    def _merged_branches(self, repo: RepoRef) -> list[BranchAnalysis]:
        results = []
        for branch in self.github.list_branches(repo):
            analysis = self.analyze_branch(repo, branch.name)
            if analysis is not None and analysis.is_merged:
                results.append(analysis)
        return results

    def find_manually_merged_branches(self, repo: RepoRef) -> list[BranchAnalysis]:
        """Merged branches with no pull request on record."""
        logger.info("Finding manually merged branches in %s", repo)
        results = [a for a in self._merged_branches(repo) if not a.has_associated_pr]
        for analysis in results:
            logger.info(
                "Found manually merged branch %s (contributors: %s)",
                analysis.branch.name,
                ", ".join(sorted(analysis.contributors)),
            )
        return results

    def find_pr_merged_branches(self, repo: RepoRef) -> list[BranchAnalysis]:
        """Merged branches whose pull request is on record but which still exist."""
        logger.info("Finding PR-merged branches still present in %s", repo)
        results = [a for a in self._merged_branches(repo) if a.has_associated_pr]
        for analysis in results:
            logger.info("Found PR-merged branch %s (PR #%s)", analysis.branch.name, analysis.associated_pr_number)
        return results

    def is_safe_to_delete(self, repo: RepoRef, branch_name: str, expected_sha: str | None = None) -> SafetyCheck:
        """Decide whether ``branch_name`` may be deleted right now.

        Checks run cheapest first and stop at the first failure:
        protected pattern → existence → default branch → fully merged →
        head still at ``expected_sha`` (when given). Call this immediately
        before every delete; an earlier analysis is not enough.
        """
        logger.debug("Checking if %s in %s is safe to delete (expected sha %s)", branch_name, repo, expected_sha)

        if is_protected_branch(branch_name, self.config):
            return SafetyCheck(safe=False, reason="Branch is protected")

        if not self.github.branch_exists(repo, branch_name):
            return SafetyCheck(safe=False, reason="Branch no longer exists")

        default_branch = self.github.get_default_branch(repo)
        if branch_name == default_branch:
            return SafetyCheck(safe=False, reason="Cannot delete default branch")

        if not self.github.is_branch_merged(repo, branch_name, default_branch):
            return SafetyCheck(safe=False, reason="Branch is not fully merged")

        if expected_sha:
            current_sha = self.github.get_branch_sha(repo, branch_name)
            if current_sha != expected_sha:
                return SafetyCheck(safe=False, reason="Branch has new commits since last check")

        return SafetyCheck(safe=True)
