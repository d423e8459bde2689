"""Stale pull request warnings and auto-close.

The per-PR state (fresh → warned → closed) is never stored. Each run rebuilds
it from two HTML-comment markers in the PR's issue comments plus the number of
days since the last activity, so reruns are idempotent: a marker that is
already present is never posted again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from janitor_core.config import BotConfig, has_excluded_label
from janitor_core.models import EPOCH, ActionResult, PullRequest, RepoRef, summarize

logger = logging.getLogger(__name__)

WARNING_COMMENT_MARKER = "<!-- repo-janitor-stale-warning -->"
CLOSING_COMMENT_MARKER = "<!-- repo-janitor-stale-close -->"

_SECONDS_PER_DAY = 24 * 60 * 60


def _plural_days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


class StalePrHandler:
    def __init__(self, github, config: BotConfig, clock: Callable[[], datetime] | None = None):
        self.github = github
        self.config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def process_repository(self, repo: RepoRef) -> list[ActionResult]:
        """Run the state machine over every open PR in ``repo``.

        A failure on one PR is recorded and the loop moves on.
        """
        logger.info("Processing %s for stale PRs", repo)
        results: list[ActionResult] = []

        try:
            prs = self.github.list_open_pull_requests(repo)
        except Exception as e:
            logger.error("Error listing pull requests in %s: %s", repo, e)
            return [ActionResult(success=False, action="stale_scan", details={"repo": repo.full_name}, error=str(e))]

        logger.info("Found %d open PRs in %s", len(prs), repo)
        for pr in prs:
            try:
                result = self.process_pull_request(repo, pr)
            except Exception as e:
                logger.error("Error checking %s#%d: %s", repo, pr.number, e)
                result = ActionResult(
                    success=False,
                    action="stale_check",
                    details={"repo": repo.full_name, "pr_number": pr.number},
                    error=str(e),
                )
            if result is not None:
                results.append(result)
        return results

    def process_pull_request(self, repo: RepoRef, pr: PullRequest) -> ActionResult | None:
        """Warn, close, or do nothing for one PR. None means no action.

        Collaborator errors while reading activity or comments propagate: an
        unreadable PR must not be judged as inactive.
        """
        if has_excluded_label(pr.labels, self.config):
            logger.debug("Skipping %s#%d with excluded label", repo, pr.number)
            return None

        days_since_activity = self._days_since(self._last_activity(repo, pr))
        stale = self.config.stale_prs

        logger.debug(
            "%s#%d inactive for %d days (warn at %d, close at %d)",
            repo,
            pr.number,
            days_since_activity,
            stale.warning_days,
            stale.close_days,
        )

        comments = self.github.list_comments(repo, pr.number)
        has_warning = any(WARNING_COMMENT_MARKER in c.body for c in comments)
        has_closing = any(CLOSING_COMMENT_MARKER in c.body for c in comments)

        if days_since_activity >= stale.close_days and has_warning and not has_closing:
            return self._close_stale_pr(repo, pr, days_since_activity)

        if days_since_activity >= stale.warning_days and not has_warning:
            return self._warn_stale_pr(repo, pr, days_since_activity)

        return None

    def _last_activity(self, repo: RepoRef, pr: PullRequest) -> datetime:
        activity = self.github.get_pull_request_activity(repo, pr.number)
        if activity is not None:
            return activity
        return pr.updated_at or EPOCH

    def _days_since(self, when: datetime) -> int:
        return int((self._clock() - when).total_seconds() // _SECONDS_PER_DAY)

    def _warn_stale_pr(self, repo: RepoRef, pr: PullRequest, days_since_activity: int) -> ActionResult:
        logger.info("Posting stale warning on %s#%d (%d days inactive)", repo, pr.number, days_since_activity)
        # Never promise a grace period of zero or fewer days.
        days_until_close = max(1, self.config.stale_prs.close_days - days_since_activity)
        details = {
            "repo": repo.full_name,
            "pr_number": pr.number,
            "pr_title": pr.title,
            "author": pr.author,
            "days_since_activity": days_since_activity,
            "days_until_close": days_until_close,
        }

        try:
            self.github.create_comment(
                repo, pr.number, self.create_warning_comment(pr.author, days_since_activity, days_until_close)
            )
        except Exception as e:
            logger.error("Failed to warn %s#%d: %s", repo, pr.number, e)
            return ActionResult(success=False, action="stale_warning", details=details, error=str(e))
        return ActionResult(success=True, action="stale_warning", details=details)

    def _close_stale_pr(self, repo: RepoRef, pr: PullRequest, days_since_activity: int) -> ActionResult:
        logger.info("Closing stale PR %s#%d", repo, pr.number)
        details = {
            "repo": repo.full_name,
            "pr_number": pr.number,
            "pr_title": pr.title,
            "author": pr.author,
            "days_since_activity": days_since_activity,
        }

        # Comment first: the closing marker is what stops a rerun from acting twice.
        try:
            self.github.create_comment(repo, pr.number, self.create_closing_comment(pr.author, days_since_activity))
            self.github.close_pull_request(repo, pr.number)
        except Exception as e:
            logger.error("Failed to close %s#%d: %s", repo, pr.number, e)
            return ActionResult(success=False, action="stale_close", details=details, error=str(e))
        return ActionResult(success=True, action="stale_close", details=details)

    def _signature(self) -> str:
        name = f"**{self.config.bot_name}**"
        if self.config.avatar_url:
            return f'<img src="{self.config.avatar_url}" width="32" height="32" align="left" />\n\n{name}'
        return name

    def create_warning_comment(self, author: str, days_since_activity: int, days_until_close: int) -> str:
        return (
            f"{WARNING_COMMENT_MARKER}\n"
            f"{self._signature()}\n\n"
            "---\n\n"
            f"Hi @{author}!\n\n"
            f"This PR has been inactive for {_plural_days(days_since_activity)}. "
            f"If there's no activity within the next {_plural_days(days_until_close)}, "
            "I'll close it automatically to keep the repository tidy.\n\n"
            "If you're still working on this, just leave a comment or push a commit to reset the timer!"
        )

    def create_closing_comment(self, author: str, days_since_activity: int) -> str:
        return (
            f"{CLOSING_COMMENT_MARKER}\n"
            f"{self._signature()}\n\n"
            "---\n\n"
            f"Hi @{author}!\n\n"
            f"This PR has been inactive for {_plural_days(days_since_activity)}, "
            "so I'm closing it now to keep things tidy.\n\n"
            "You can always reopen it if you want to continue working on it."
        )


def handle_stale_prs(github, config: BotConfig, repos: list[RepoRef], clock=None) -> list[ActionResult]:
    """Process every repository in turn, one failing repo never stopping the rest."""
    handler = StalePrHandler(github, config, clock=clock)
    results: list[ActionResult] = []
    for repo in repos:
        results.extend(handler.process_repository(repo))
    totals = summarize(results)
    logger.info(
        "Stale PR processing complete: %d action(s), %d successful, %d failed",
        totals["total"],
        totals["successful"],
        totals["failed"],
    )
    return results
