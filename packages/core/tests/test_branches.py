"""Tests for BranchAnalyzer: analysis, categorisation and the safety classifier."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from janitor_core.branches import BranchAnalyzer
from janitor_core.config import BotConfig
from janitor_core.models import EPOCH, Branch, Commit, RepoRef

REPO = RepoRef(owner="acme", name="widgets")
SHA = "a" * 40


def _config():
    return BotConfig(protected_patterns=("main", "master", "release/*"), exclude_patterns=("dependabot/*",))


def _commit(author, day):
    return Commit(sha=f"{day:040d}", author=author, date=datetime(2024, 1, day, tzinfo=timezone.utc))


def _make_github(default_branch="main", exists=True, merged=True, sha=SHA, pr=None, commits=None, branches=()):
    github = MagicMock()
    github.get_default_branch.return_value = default_branch
    github.branch_exists.return_value = exists
    github.is_branch_merged.return_value = merged
    github.get_branch_sha.return_value = sha
    github.find_pull_request_for_branch.return_value = pr
    github.get_branch_commits.return_value = commits if commits is not None else []
    github.list_branches.return_value = [Branch(name=b, sha=SHA) for b in branches]
    return github


# ---------------------------------------------------------------------------
# is_safe_to_delete
# ---------------------------------------------------------------------------


class TestIsSafeToDelete:
    def test_protected_branch_short_circuits_without_network_calls(self):
        github = _make_github()
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "main")

        assert check.safe is False
        assert check.reason == "Branch is protected"
        assert github.method_calls == []

    def test_protected_wildcard_pattern(self):
        github = _make_github()
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "release/1.0")
        assert check.reason == "Branch is protected"
        github.branch_exists.assert_not_called()

    def test_missing_branch_stops_before_default_branch_lookup(self):
        github = _make_github(exists=False)
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "feature/x")

        assert check.safe is False
        assert check.reason == "Branch no longer exists"
        github.branch_exists.assert_called_once_with(REPO, "feature/x")
        github.get_default_branch.assert_not_called()
        github.is_branch_merged.assert_not_called()

    def test_default_branch_is_never_deleted(self):
        github = _make_github(default_branch="trunk")
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "trunk")

        assert check.safe is False
        assert check.reason == "Cannot delete default branch"
        github.is_branch_merged.assert_not_called()

    def test_unmerged_branch_stops_before_sha_check(self):
        github = _make_github(merged=False)
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "feature/x", expected_sha="abc")

        assert check.safe is False
        assert check.reason == "Branch is not fully merged"
        github.is_branch_merged.assert_called_once_with(REPO, "feature/x", "main")
        github.get_branch_sha.assert_not_called()

    def test_new_commits_since_last_check(self):
        github = _make_github(sha="def")
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "feature/y", expected_sha="abc")

        assert check.safe is False
        assert check.reason == "Branch has new commits since last check"

    def test_matching_sha_is_safe(self):
        github = _make_github(sha="abc")
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "feature/y", expected_sha="abc")
        assert check.safe is True
        assert check.reason is None

    def test_no_expected_sha_skips_sha_lookup(self):
        github = _make_github()
        check = BranchAnalyzer(github, _config()).is_safe_to_delete(REPO, "feature/y")

        assert check.safe is True
        github.get_branch_sha.assert_not_called()


# ---------------------------------------------------------------------------
# analyze_branch
# ---------------------------------------------------------------------------


class TestAnalyzeBranch:
    def test_protected_and_excluded_branches_skipped_without_calls(self):
        github = _make_github()
        analyzer = BranchAnalyzer(github, _config())

        assert analyzer.analyze_branch(REPO, "master") is None
        assert analyzer.analyze_branch(REPO, "dependabot/npm/lodash") is None
        assert github.method_calls == []

    def test_default_branch_skipped(self):
        github = _make_github(default_branch="trunk")
        assert BranchAnalyzer(github, _config()).analyze_branch(REPO, "trunk") is None

    def test_vanished_branch_skipped(self):
        github = _make_github(sha=None)
        assert BranchAnalyzer(github, _config()).analyze_branch(REPO, "feature/x") is None

    def test_collaborator_error_is_fail_open(self):
        github = _make_github()
        github.is_branch_merged.side_effect = RuntimeError("502 Bad Gateway")
        assert BranchAnalyzer(github, _config()).analyze_branch(REPO, "feature/x") is None

    def test_builds_analysis_with_unique_contributors(self):
        commits = [_commit("alice", 3), _commit("bob", 5), _commit("alice", 1)]
        github = _make_github(pr=42, commits=commits)

        analysis = BranchAnalyzer(github, _config()).analyze_branch(REPO, "feature/x")

        assert analysis.branch == Branch(name="feature/x", sha=SHA, protected=False)
        assert analysis.is_merged is True
        assert analysis.has_associated_pr is True
        assert analysis.associated_pr_number == 42
        assert analysis.contributors == {"alice", "bob"}
        assert analysis.last_commit_date == datetime(2024, 1, 5, tzinfo=timezone.utc)

    def test_contributors_sampled_from_last_ten_commits(self):
        github = _make_github()
        BranchAnalyzer(github, _config()).analyze_branch(REPO, "feature/x")
        github.get_branch_commits.assert_called_once_with(REPO, "feature/x", 10)

    def test_no_pr_means_no_associated_pr(self):
        analysis = BranchAnalyzer(_make_github(pr=None), _config()).analyze_branch(REPO, "feature/x")
        assert analysis.has_associated_pr is False
        assert analysis.associated_pr_number is None

    def test_no_commits_gives_epoch_last_commit_date(self):
        analysis = BranchAnalyzer(_make_github(commits=[]), _config()).analyze_branch(REPO, "feature/x")
        assert analysis.last_commit_date == EPOCH
        assert analysis.contributors == set()


# ---------------------------------------------------------------------------
# find_manually_merged_branches / find_pr_merged_branches
# ---------------------------------------------------------------------------


def _github_with_mixed_branches():
    """main (default), manual (merged, no PR), viapr (merged, PR 7), open (unmerged)."""
    github = _make_github(branches=["main", "manual", "viapr", "open", "dependabot/pip/x"])
    github.is_branch_merged.side_effect = lambda repo, name, base: name != "open"
    github.find_pull_request_for_branch.side_effect = lambda repo, name: 7 if name == "viapr" else None
    github.get_branch_commits.return_value = [_commit("alice", 2)]
    return github


class TestFindBranches:
    def test_manually_merged_only(self):
        analyzer = BranchAnalyzer(_github_with_mixed_branches(), _config())
        results = analyzer.find_manually_merged_branches(REPO)
        assert [a.branch.name for a in results] == ["manual"]

    def test_pr_merged_only(self):
        analyzer = BranchAnalyzer(_github_with_mixed_branches(), _config())
        results = analyzer.find_pr_merged_branches(REPO)
        assert [a.branch.name for a in results] == ["viapr"]
        assert results[0].associated_pr_number == 7

    def test_one_failing_branch_does_not_stop_the_scan(self):
        github = _github_with_mixed_branches()

        def find_pr(repo, name):
            if name == "viapr":
                raise RuntimeError("rate limited")
            return None

        github.find_pull_request_for_branch.side_effect = find_pr
        results = BranchAnalyzer(github, _config()).find_manually_merged_branches(REPO)
        assert [a.branch.name for a in results] == ["manual"]
