"""Source-control capability backed by PyGithub.

Every method takes a RepoRef and returns plain janitor_core.models values so
the analyzer and handlers never touch PyGithub objects directly (and tests can
substitute a MagicMock with the same method names).

Lookups whose failure has a safe meaning swallow GithubException here:
``branch_exists`` → False, ``get_branch_sha`` → None, ``is_branch_merged`` →
False, ``get_branch_commits`` → [], ``get_file_content`` → None. Everything
else raises so the caller's handler boundary can record the failure.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import islice

from github import Auth, Github, GithubException

from janitor_core.models import Branch, Commit, IssueComment, PullRequest, RepoRef

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 30


def _aware(value: datetime | None) -> datetime | None:
    # Older PyGithub releases return naive UTC datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GitHubClient:
    def __init__(self, token: str, gh: Github | None = None):
        self._gh = gh if gh is not None else Github(auth=Auth.Token(token), timeout=_TIMEOUT_SECONDS)
        self._repos: dict[str, object] = {}

    def _repo(self, repo: RepoRef):
        if repo.full_name not in self._repos:
            self._repos[repo.full_name] = self._gh.get_repo(repo.full_name)
        return self._repos[repo.full_name]

    # ------------------------------------------------------------------ #
    # Pull requests                                                        #
    # ------------------------------------------------------------------ #

    def list_open_pull_requests(self, repo: RepoRef) -> list[PullRequest]:
        logger.debug("Fetching open pull requests for %s", repo)
        pulls = []
        for pr in self._repo(repo).get_pulls(state="open"):
            pulls.append(
                PullRequest(
                    number=pr.number,
                    title=pr.title or "",
                    author=pr.user.login if pr.user else "unknown",
                    created_at=_aware(pr.created_at),
                    updated_at=_aware(pr.updated_at),
                    last_activity_at=_aware(pr.updated_at),
                    labels={label.name for label in pr.labels if label.name},
                    head_ref=pr.head.ref,
                    head_sha=pr.head.sha,
                    base_branch=pr.base.ref,
                    url=pr.html_url,
                )
            )
        return pulls

    def get_pull_request_activity(self, repo: RepoRef, pr_number: int) -> datetime | None:
        """Return the latest of: newest comment update, review submission, commit.

        None means the lookups succeeded but found no activity signal at all.
        """
        logger.debug("Fetching activity for %s#%d", repo, pr_number)
        this_repo = self._repo(repo)
        pr = this_repo.get_pull(pr_number)

        dates: list[datetime] = []
        for comment in this_repo.get_issue(pr_number).get_comments():
            if comment.updated_at:
                dates.append(_aware(comment.updated_at))
        for review in pr.get_reviews():
            if review.submitted_at:
                dates.append(_aware(review.submitted_at))
        for commit in pr.get_commits():
            committer = commit.commit.committer
            if committer is not None and committer.date:
                dates.append(_aware(committer.date))

        return max(dates) if dates else None

    def list_comments(self, repo: RepoRef, issue_number: int) -> list[IssueComment]:
        return [
            IssueComment(id=c.id, body=c.body or "", user=c.user.login if c.user else "unknown")
            for c in self._repo(repo).get_issue(issue_number).get_comments()
        ]

    def create_comment(self, repo: RepoRef, issue_number: int, body: str) -> None:
        logger.info("Creating comment on %s#%d", repo, issue_number)
        self._repo(repo).get_issue(issue_number).create_comment(body)

    def close_pull_request(self, repo: RepoRef, pr_number: int) -> None:
        logger.info("Closing pull request %s#%d", repo, pr_number)
        self._repo(repo).get_pull(pr_number).edit(state="closed")

    def find_pull_request_for_branch(self, repo: RepoRef, branch_name: str) -> int | None:
        logger.debug("Finding PR for branch %s in %s", branch_name, repo)
        for pr in self._repo(repo).get_pulls(state="all", head=f"{repo.owner}:{branch_name}"):
            return pr.number
        return None

    # ------------------------------------------------------------------ #
    # Branches                                                             #
    # ------------------------------------------------------------------ #

    def list_branches(self, repo: RepoRef) -> list[Branch]:
        logger.debug("Fetching branches for %s", repo)
        return [Branch(name=b.name, sha=b.commit.sha, protected=b.protected) for b in self._repo(repo).get_branches()]

    def get_default_branch(self, repo: RepoRef) -> str:
        return self._repo(repo).default_branch

    def compare(self, repo: RepoRef, base: str, head: str) -> tuple[int, int]:
        """Return ``(ahead_by, behind_by)`` of ``head`` relative to ``base``."""
        comparison = self._repo(repo).compare(base, head)
        return comparison.ahead_by, comparison.behind_by

    def is_branch_merged(self, repo: RepoRef, branch_name: str, base_branch: str) -> bool:
        logger.debug("Checking if %s is merged into %s in %s", branch_name, base_branch, repo)
        try:
            ahead_by, _ = self.compare(repo, base_branch, branch_name)
        except GithubException as e:
            logger.error("Error checking merge status of %s in %s: %s", branch_name, repo, e)
            return False
        return ahead_by == 0

    def get_branch_commits(self, repo: RepoRef, branch_name: str, limit: int = 10) -> list[Commit]:
        try:
            commits = list(islice(self._repo(repo).get_commits(sha=branch_name), limit))
        except GithubException as e:
            logger.error("Error fetching commits of %s in %s: %s", branch_name, repo, e)
            return []

        results = []
        for c in commits:
            git_commit = c.commit
            if c.author is not None and c.author.login:
                author = c.author.login
            else:
                author = (git_commit.author.name if git_commit.author else None) or "unknown"
            date = None
            if git_commit.committer is not None:
                date = git_commit.committer.date
            if date is None and git_commit.author is not None:
                date = git_commit.author.date
            results.append(
                Commit(sha=c.sha, author=author, date=_aware(date) or datetime.fromtimestamp(0, timezone.utc))
            )
        return results

    def get_branch_sha(self, repo: RepoRef, branch_name: str) -> str | None:
        try:
            return self._repo(repo).get_branch(branch_name).commit.sha
        except GithubException:
            return None

    def branch_exists(self, repo: RepoRef, branch_name: str) -> bool:
        try:
            self._repo(repo).get_branch(branch_name)
        except GithubException:
            return False
        return True

    def delete_branch(self, repo: RepoRef, branch_name: str) -> None:
        logger.info("Deleting branch %s in %s", branch_name, repo)
        self._repo(repo).get_git_ref(f"heads/{branch_name}").delete()

    # ------------------------------------------------------------------ #
    # Organization / files                                                 #
    # ------------------------------------------------------------------ #

    def list_org_repos(self, org: str) -> list[RepoRef]:
        logger.debug("Fetching repositories of organization %s", org)
        return [RepoRef(owner=r.owner.login, name=r.name) for r in self._gh.get_organization(org).get_repos(type="all")]

    def get_file_content(self, repo: RepoRef, path: str) -> str | None:
        try:
            contents = self._repo(repo).get_contents(path)
        except GithubException:
            logger.debug("File %s not found in %s", path, repo)
            return None
        if isinstance(contents, list):
            return None
        return contents.decoded_content.decode("utf-8", errors="replace")
