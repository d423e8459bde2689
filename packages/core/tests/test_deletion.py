"""Tests for the human-approved deletion workflow."""

from unittest.mock import MagicMock

import pytest

from janitor_core.config import BotConfig
from janitor_core.deletion import DeletionRequestWorkflow, handle_manual_merges, is_bot_identity
from janitor_core.models import Branch, BranchAnalysis, RepoRef, SafetyCheck
from janitor_store.memory import InMemoryPendingStore
from janitor_store.models import DeletionStatus, SentMessage
from janitor_store.redis_store import RedisDedupStore

REPO = RepoRef(owner="acme", name="widgets")
BRANCH = "feature/old"


def _make_notifier(mapping=None, fail_for=()):
    """A notifier that can reach every login in ``mapping``."""
    mapping = {"alice": "U1", "bob": "U2"} if mapping is None else mapping
    notifier = MagicMock()
    notifier.resolve_user.side_effect = mapping.get

    def send(login, owner, repo, branch_name, request_id):
        if login in fail_for:
            return None
        return SentMessage(channel=f"D-{login}", ts=f"{len(login)}.0001")

    notifier.send_branch_deletion_request.side_effect = send
    return notifier


def _make_analyzer(check=None):
    analyzer = MagicMock()
    analyzer.is_safe_to_delete.return_value = check or SafetyCheck(safe=True)
    return analyzer


def _workflow(github=None, notifier=None, analyzer=None, dedup_store=None, ids=("req-1", "req-2", "req-3")):
    id_iter = iter(ids)
    return DeletionRequestWorkflow(
        github or MagicMock(),
        notifier or _make_notifier(),
        BotConfig(),
        dedup_store=dedup_store,
        pending_store=InMemoryPendingStore(),
        analyzer=analyzer or _make_analyzer(),
        id_factory=lambda: next(id_iter),
    )


def _dedup(already_sent=()):
    store = MagicMock()
    store.was_sent.side_effect = lambda owner, repo, branch, contributor: contributor in already_sent
    return store


@pytest.mark.parametrize(
    "login, expected",
    [("dependabot[bot]", True), ("Renovate[BOT]", True), ("alice", False), ("bot-alice", False)],
)
def test_is_bot_identity(login, expected):
    assert is_bot_identity(login) is expected


# ---------------------------------------------------------------------------
# request_deletion_permission
# ---------------------------------------------------------------------------


class TestRequestDeletionPermission:
    def test_bots_are_filtered_out(self):
        notifier = _make_notifier()
        workflow = _workflow(notifier=notifier)

        result = workflow.request_deletion_permission(REPO, BRANCH, ["alice", "dependabot[bot]"])

        assert result.success is True
        assert result.action == "deletion_request_sent"
        assert result.details["messages_sent"] == 1
        assert result.details["contributors"] == ["alice"]
        notifier.send_branch_deletion_request.assert_called_once_with("alice", "acme", "widgets", BRANCH, "req-1")

        pending = workflow.get_pending_deletion("req-1")
        assert pending.status is DeletionStatus.PENDING
        assert pending.contributors == ["alice"]
        assert pending.messages == [SentMessage(channel="D-alice", ts="5.0001")]

    def test_only_bots_fails_without_creating_request(self):
        notifier = _make_notifier()
        workflow = _workflow(notifier=notifier)

        result = workflow.request_deletion_permission(REPO, BRANCH, ["dependabot[bot]"])

        assert result.success is False
        assert result.error == "No human contributors to notify"
        assert workflow.pending_store.list() == []
        notifier.send_branch_deletion_request.assert_not_called()

    def test_duplicate_contributors_are_notified_once(self):
        notifier = _make_notifier()
        result = _workflow(notifier=notifier).request_deletion_permission(REPO, BRANCH, ["alice", "alice", "bob"])

        assert result.details["messages_sent"] == 2
        assert notifier.send_branch_deletion_request.call_count == 2

    def test_already_notified_contributor_is_skipped(self):
        notifier = _make_notifier()
        dedup = _dedup(already_sent={"alice"})
        result = _workflow(notifier=notifier, dedup_store=dedup).request_deletion_permission(
            REPO, BRANCH, ["alice", "bob"]
        )

        assert result.success is True
        assert result.details["messages_sent"] == 1
        assert result.details["skipped_duplicates"] == 1
        notifier.send_branch_deletion_request.assert_called_once()
        dedup.mark_sent.assert_called_once_with("acme", "widgets", BRANCH, "bob")

    def test_all_already_notified(self):
        workflow = _workflow(dedup_store=_dedup(already_sent={"alice", "bob"}))
        result = workflow.request_deletion_permission(REPO, BRANCH, ["alice", "bob"])

        assert result.success is False
        assert result.error == "All contributors were already notified"
        assert result.details["skipped_duplicates"] == 2
        assert workflow.get_pending_deletion("req-1").status is DeletionStatus.EXPIRED

    def test_unreachable_contributors_are_listed(self):
        notifier = _make_notifier(mapping={"alice": "U1"})
        dedup = _dedup()
        result = _workflow(notifier=notifier, dedup_store=dedup).request_deletion_permission(
            REPO, BRANCH, ["alice", "carol"]
        )

        assert result.success is True
        assert result.details["unreachable"] == ["carol"]
        dedup.mark_sent.assert_called_once_with("acme", "widgets", BRANCH, "alice")

    def test_nobody_reachable_fails_and_expires_request(self):
        notifier = _make_notifier(mapping={"alice": "U1"}, fail_for={"alice"})
        dedup = _dedup()
        workflow = _workflow(notifier=notifier, dedup_store=dedup)

        result = workflow.request_deletion_permission(REPO, BRANCH, ["alice", "carol"])

        assert result.success is False
        assert result.error == "No messages could be sent - no reachable chat identity for: alice, carol"
        assert result.details["messages_sent"] == 0
        assert workflow.get_pending_deletion("req-1").status is DeletionStatus.EXPIRED
        assert workflow.get_pending_deletions() == []
        dedup.mark_sent.assert_not_called()

    def test_unmapped_login_is_never_sent_to(self):
        notifier = _make_notifier(mapping={})
        _workflow(notifier=notifier).request_deletion_permission(REPO, BRANCH, ["carol"])
        notifier.send_branch_deletion_request.assert_not_called()

    def test_failing_redis_still_sends(self):
        client = MagicMock()
        client.get.side_effect = ConnectionError("refused")
        client.setex.side_effect = ConnectionError("refused")
        notifier = _make_notifier()
        workflow = _workflow(notifier=notifier, dedup_store=RedisDedupStore(client=client))

        result = workflow.request_deletion_permission(REPO, BRANCH, ["alice"])

        assert result.success is True
        assert result.details["messages_sent"] == 1

    def test_process_repository_requests_each_manual_merge(self):
        analyzer = _make_analyzer()
        analyzer.find_manually_merged_branches.return_value = [
            BranchAnalysis(branch=Branch(name="feature/a", sha="1"), is_merged=True, contributors={"bob", "alice"}),
            BranchAnalysis(branch=Branch(name="feature/b", sha="2"), is_merged=True, contributors={"ci[bot]"}),
        ]
        notifier = _make_notifier()
        results = _workflow(notifier=notifier, analyzer=analyzer).process_repository(REPO)

        assert [r.success for r in results] == [True, False]
        assert results[0].details["contributors"] == ["alice", "bob"]

    def test_process_repository_scan_error(self):
        analyzer = _make_analyzer()
        analyzer.find_manually_merged_branches.side_effect = RuntimeError("500")
        results = _workflow(analyzer=analyzer).process_repository(REPO)
        assert [(r.action, r.success) for r in results] == [("manual_merge_scan", False)]


class TestFailureIsolation:
    def _analyzer(self, *branch_names):
        analyzer = _make_analyzer()
        analyzer.find_manually_merged_branches.return_value = [
            BranchAnalysis(branch=Branch(name=name, sha="1"), is_merged=True, contributors={"alice"})
            for name in branch_names
        ]
        return analyzer

    def test_send_error_on_one_branch_does_not_stop_the_rest(self):
        notifier = _make_notifier()

        def send(login, owner, repo, branch_name, request_id):
            if branch_name == "feature/a":
                raise RuntimeError("IncompleteRead")
            return SentMessage(channel="D-alice", ts="1.0")

        notifier.send_branch_deletion_request.side_effect = send
        workflow = _workflow(
            notifier=notifier,
            analyzer=self._analyzer("feature/a", "feature/b"),
            ids=("req-1", "req-2", "req-3", "req-4"),
        )
        other = RepoRef(owner="acme", name="gadgets")

        results = handle_manual_merges(MagicMock(), notifier, BotConfig(), [REPO, other], workflow=workflow)

        assert [(r.details["repo"], r.details["branch_name"], r.success) for r in results] == [
            ("acme/widgets", "feature/a", False),
            ("acme/widgets", "feature/b", True),
            ("acme/gadgets", "feature/a", False),
            ("acme/gadgets", "feature/b", True),
        ]
        assert results[0].details["unreachable"] == ["alice"]
        assert workflow.get_pending_deletion("req-1").status is DeletionStatus.EXPIRED

    def test_unexpected_error_is_recorded_per_branch(self):
        dedup = _dedup()
        dedup.mark_sent.side_effect = [RuntimeError("disk full"), None]
        notifier = _make_notifier()
        workflow = _workflow(notifier=notifier, dedup_store=dedup, analyzer=self._analyzer("feature/a", "feature/b"))
        notifier.send_branch_deletion_request.side_effect = [
            SentMessage(channel="D-alice", ts="1.0"),
            SentMessage(channel="D-alice", ts="2.0"),
        ]

        results = workflow.process_repository(REPO)

        assert [(r.action, r.success) for r in results] == [
            ("deletion_request_sent", False),
            ("deletion_request_sent", True),
        ]
        assert results[0].error == "disk full"
        assert results[0].details == {"branch_name": "feature/a", "repo": "acme/widgets"}
        assert workflow.get_pending_deletion("req-2").status is DeletionStatus.PENDING

    def test_request_with_no_message_is_expired_when_send_loop_fails(self):
        dedup = _dedup()
        dedup.was_sent.side_effect = RuntimeError("store exploded")
        workflow = _workflow(dedup_store=dedup)

        with pytest.raises(RuntimeError):
            workflow.request_deletion_permission(REPO, BRANCH, ["alice"])

        assert workflow.get_pending_deletion("req-1").status is DeletionStatus.EXPIRED


# ---------------------------------------------------------------------------
# handle_deletion_response
# ---------------------------------------------------------------------------


def _requested(workflow, contributors=("alice", "bob")):
    workflow.request_deletion_permission(REPO, BRANCH, list(contributors))
    return "req-1"


class TestHandleDeletionResponse:
    def test_approval_deletes_branch(self):
        github = MagicMock()
        analyzer = _make_analyzer()
        dedup = _dedup()
        workflow = _workflow(github=github, analyzer=analyzer, dedup_store=dedup)
        request_id = _requested(workflow)

        result = workflow.handle_deletion_response(request_id, approved=True)

        assert result.success is True
        assert result.action == "branch_deletion"
        analyzer.is_safe_to_delete.assert_called_once_with(REPO, BRANCH)
        github.delete_branch.assert_called_once_with(REPO, BRANCH)
        dedup.clear_all.assert_called_once_with("acme", "widgets", BRANCH)
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.APPROVED

    def test_every_sent_message_is_updated_with_outcome(self):
        notifier = _make_notifier()
        workflow = _workflow(notifier=notifier)
        request_id = _requested(workflow)

        workflow.handle_deletion_response(request_id, approved=True)

        expected = f"Branch `{BRANCH}` in `acme/widgets` has been deleted."
        notifier.update_message.assert_any_call("D-alice", "5.0001", expected)
        notifier.update_message.assert_any_call("D-bob", "3.0001", expected)
        assert notifier.update_message.call_count == 2

    def test_second_response_is_refused(self):
        github = MagicMock()
        workflow = _workflow(github=github)
        request_id = _requested(workflow)

        first = workflow.handle_deletion_response(request_id, approved=True)
        second = workflow.handle_deletion_response(request_id, approved=False)

        assert first.success is True
        assert second.success is False
        assert second.error == "Request already processed"
        assert github.delete_branch.call_count == 1
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.APPROVED

    def test_unknown_request(self):
        result = _workflow().handle_deletion_response("nope", approved=True)
        assert result.success is False
        assert result.error == "Request not found or expired"

    def test_expired_request_cannot_be_answered(self):
        workflow = _workflow(notifier=_make_notifier(mapping={}))
        _requested(workflow)
        result = workflow.handle_deletion_response("req-1", approved=True)
        assert result.error == "Request already processed"

    def test_rejection_keeps_branch(self):
        github = MagicMock()
        notifier = _make_notifier()
        workflow = _workflow(github=github, notifier=notifier)
        request_id = _requested(workflow, contributors=("alice",))

        result = workflow.handle_deletion_response(request_id, approved=False)

        assert result.success is True
        assert result.action == "deletion_rejected"
        github.delete_branch.assert_not_called()
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.REJECTED
        notifier.update_message.assert_called_once_with(
            "D-alice", "5.0001", f"Got it! Branch `{BRANCH}` in `acme/widgets` will be kept."
        )

    def test_unsafe_after_approval_is_rejected(self):
        github = MagicMock()
        analyzer = _make_analyzer(SafetyCheck(safe=False, reason="Branch is not fully merged"))
        workflow = _workflow(github=github, analyzer=analyzer)
        request_id = _requested(workflow)

        result = workflow.handle_deletion_response(request_id, approved=True)

        assert result.success is False
        assert result.error == "Branch is not fully merged"
        github.delete_branch.assert_not_called()
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.REJECTED

    def test_failed_delete_stays_pending_and_can_be_retried(self):
        github = MagicMock()
        github.delete_branch.side_effect = [RuntimeError("502 Bad Gateway"), None]
        notifier = _make_notifier()
        workflow = _workflow(github=github, notifier=notifier)
        request_id = _requested(workflow)

        first = workflow.handle_deletion_response(request_id, approved=True)
        assert first.success is False
        assert "502" in first.error
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.PENDING
        notifier.update_message.assert_not_called()

        second = workflow.handle_deletion_response(request_id, approved=True)
        assert second.success is True
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.APPROVED

    def test_safety_check_error_stays_pending(self):
        analyzer = _make_analyzer()
        analyzer.is_safe_to_delete.side_effect = RuntimeError("timeout")
        workflow = _workflow(analyzer=analyzer)
        request_id = _requested(workflow)

        result = workflow.handle_deletion_response(request_id, approved=True)

        assert result.success is False
        assert workflow.get_pending_deletion(request_id).status is DeletionStatus.PENDING


def test_handle_manual_merges_runs_every_repo():
    workflow = MagicMock()
    workflow.process_repository.side_effect = lambda repo: [MagicMock(success=True)]
    other = RepoRef(owner="acme", name="gadgets")

    results = handle_manual_merges(MagicMock(), MagicMock(), BotConfig(), [REPO, other], workflow=workflow)

    assert len(results) == 2
    assert [c.args[0] for c in workflow.process_repository.call_args_list] == [REPO, other]
