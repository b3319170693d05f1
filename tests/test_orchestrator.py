"""Tests for core.orchestrator - mock LLM-backed agents and GitHub, verify pipeline logic."""

from unittest.mock import MagicMock

from config.settings import AgentConfig
from core.errors import GitHubError
from core.orchestrator import Orchestrator
from core.state import FileEdit, FinalChangeSet, Plan
from manager.tasks import invocation_context

BOT = "github-actions[bot]"


def _plan():
    return Plan(summary="Add greeting", target_files=["hello.py"], approach="Write it", complexity="low")


def _final(files=None):
    if files is None:
        files = [FileEdit("hello.py", "create", "def hello():\n    return 'hi'\n\n")]
    return FinalChangeSet(files=files, summary="Add greeting\n\n## Changes Summary",
                          tests_added=False, complete=True, iterations_used=1)


def _client(comments=None):
    client = MagicMock()
    client.owner = "octo"
    client.repo = "demo"
    client.label = "primary"
    client.get_file.return_value = None
    client.default_branch.return_value = "main"
    client.get_ref.side_effect = lambda ref: "trunksha" if ref == "main" else None
    client.get_commit.return_value = {"tree": {"sha": "basetree"}}
    client.create_blob.return_value = "blobsha"
    client.create_tree.return_value = "newtree"
    client.create_commit.return_value = "c0ffee1234"
    client.list_pulls.return_value = []
    client.create_pull.return_value = {"number": 101, "html_url": "https://github.com/octo/demo/pull/101"}
    client.add_reaction.return_value = 555
    client.list_issue_comments.return_value = comments or []
    client.get_issue.return_value = {"labels": []}
    client.list_review_comments.return_value = []
    return client


def _orchestrator(client, generator_result=None, **config):
    planner = MagicMock()
    planner.run.return_value = _plan()
    generator = MagicMock()
    generator.run.return_value = generator_result or _final()
    orch = Orchestrator(
        AgentConfig(github_token="tok", **config),
        client_factory=lambda token, owner, repo, label: client,
        planner=planner, generator=generator, reviewer=MagicMock(),
    )
    return orch, planner, generator


def _issue_context(actor="alice", body="Please add a greeting function."):
    payload = {"issue": {
        "number": 42, "title": "Add greeting", "body": body,
        "labels": [{"name": "ready-for-agent"}],
    }}
    return invocation_context("issues", actor, "octo/demo", payload)


def _review_context():
    payload = {
        "review": {"id": 11, "state": "changes_requested", "body": "Rename hello"},
        "pull_request": {
            "number": 57, "title": "Add greeting", "body": "Fixes #42",
            "head": {"ref": "agent/issue-42"}, "labels": [{"name": "agent-coded"}],
        },
    }
    return invocation_context("pull_request_review", "alice", "octo/demo", payload)


def test_fresh_feature_end_to_end():
    client = _client()
    orch, planner, generator = _orchestrator(client)

    result = orch.run(_issue_context())

    assert result.status == "success"
    assert result.ok
    assert result.branch_name == "agent/issue-42"
    assert result.change_request_number == 101
    client.create_ref.assert_called_once_with("agent/issue-42", "c0ffee1234")
    client.add_labels.assert_any_call(101, ["agent-coded"])
    client.remove_label.assert_any_call(42, "ready-for-agent")
    client.add_labels.assert_any_call(42, ["assigned-to-agent"])
    client.remove_reaction.assert_called_once_with(42, 555)
    client.add_reaction.assert_any_call(42, "rocket")
    client.dispatch_event.assert_not_called()
    client.close.assert_called()


def test_feedback_ceiling_stops_before_generation():
    update = {"user": {"login": BOT}, "body": "## 🤖 Updates Applied (Iteration 1)"}
    client = _client(comments=[update, update])
    orch, planner, generator = _orchestrator(client, max_feedback_iterations=3)

    result = orch.run(_review_context())

    assert result.status == "failure"
    assert "Maximum feedback iterations" in result.message
    planner.run.assert_not_called()
    generator.run.assert_not_called()
    client.create_commit.assert_not_called()
    client.add_labels.assert_called_once_with(57, ["agent-halted"])
    assert client.create_comment.call_count == 1


def test_revision_updates_existing_pr():
    client = _client()
    client.get_ref.side_effect = lambda ref: "trunksha" if ref == "main" else "branchsha"
    client.compare.return_value = {"behind_by": 0}
    client.get_pull.return_value = {
        "number": 57, "state": "open", "merged": False,
        "head": {"ref": "agent/issue-42"}, "html_url": "https://github.com/octo/demo/pull/57",
    }
    orch, planner, generator = _orchestrator(client)

    result = orch.run(_review_context())

    assert result.status == "success"
    assert result.change_request_number == 57
    client.create_pull.assert_not_called()
    client.update_ref.assert_called_once_with("agent/issue-42", "c0ffee1234", force=False)
    task = planner.run.call_args[0][0]
    assert task.is_revision
    assert "Rename hello" in task.feedback


def test_dry_run_makes_no_remote_writes():
    client = _client()
    orch, planner, generator = _orchestrator(client, dry_run=True)

    result = orch.run(_issue_context())

    assert result.status == "dry-run"
    assert result.ok
    assert result.branch_name == "agent/issue-42"
    for write in ("create_comment", "add_labels", "remove_label", "add_reaction",
                  "create_blob", "create_commit", "create_ref", "create_pull"):
        getattr(client, write).assert_not_called()


def test_dry_run_ceiling_posts_nothing():
    update = {"user": {"login": BOT}, "body": "## 🤖 Updates Applied (Iteration 1)"}
    client = _client(comments=[update, update])
    orch, _, _ = _orchestrator(client, dry_run=True, max_feedback_iterations=3)

    result = orch.run(_review_context())

    assert result.status == "failure"
    client.create_comment.assert_not_called()
    client.add_labels.assert_not_called()


def test_bot_actor_skipped_before_any_client():
    factory = MagicMock()
    orch = Orchestrator(AgentConfig(), client_factory=factory)

    result = orch.run(_issue_context(actor=BOT))

    assert result.status == "skipped"
    assert result.ok
    factory.assert_not_called()


def test_stop_command_in_issue_skips():
    client = _client()
    orch, planner, _ = _orchestrator(client)

    result = orch.run(_issue_context(body="Actually /stop, a human will do this."))

    assert result.status == "skipped"
    planner.run.assert_not_called()
    client.create_comment.assert_not_called()


def test_no_task_is_failure():
    client = _client()
    orch, planner, _ = _orchestrator(client)

    result = orch.run(invocation_context("issues", "alice", "octo/demo", {}))

    assert result.status == "failure"
    planner.run.assert_not_called()


def test_empty_generation_reports_failure():
    client = _client()
    orch, _, _ = _orchestrator(client, generator_result=_final(files=[]))

    result = orch.run(_issue_context())

    assert result.status == "failure"
    client.create_commit.assert_not_called()
    failure = client.create_comment.call_args[0]
    assert failure[0] == 42
    assert failure[1].startswith("❌")


def test_push_failure_reports_failure():
    client = _client()
    client.create_tree.side_effect = GitHubError("Server Error", 500)
    orch, _, _ = _orchestrator(client)

    result = orch.run(_issue_context())

    assert result.status == "failure"
    assert "Failed to push" in result.message
    client.create_pull.assert_not_called()


def test_review_handoff_dispatch():
    client = _client()
    orch, _, _ = _orchestrator(client, review_event="agent-review")

    orch.run(_issue_context())

    client.dispatch_event.assert_called_once_with(
        "agent-review",
        {"pr_number": 101, "source": "coding-agent", "dispatch_depth": 1, "iteration_count": 0},
    )


def test_plan_only():
    client = _client()
    client.get_issue.return_value = {"number": 42, "title": "Add greeting", "body": ""}
    orch, planner, generator = _orchestrator(client)

    plan = orch.plan_only(invocation_context("workflow_dispatch", "alice", "octo/demo", {}, issue_number=42))

    assert plan.summary == "Add greeting"
    generator.run.assert_not_called()
    client.create_comment.assert_not_called()


def test_issue_rerun_against_pr_at_ceiling_pushes_nothing():
    update = {"user": {"login": BOT}, "body": "## 🤖 Updates Applied (Iteration 1)"}
    client = _client(comments=[update, update])
    client.list_pulls.return_value = [{"number": 57, "html_url": "https://github.com/octo/demo/pull/57"}]
    orch, planner, generator = _orchestrator(client, max_feedback_iterations=3)

    result = orch.run(_issue_context())

    assert result.status == "failure"
    assert "Maximum feedback iterations" in result.message
    planner.run.assert_not_called()
    generator.run.assert_not_called()
    for write in ("create_commit", "update_ref", "create_ref", "add_reaction"):
        getattr(client, write).assert_not_called()
    client.add_labels.assert_called_once_with(57, ["agent-halted"])


def test_issue_rerun_against_halted_pr_is_silent():
    client = _client()
    client.get_issue.return_value = {"labels": [{"name": "agent-halted"}]}
    client.list_pulls.return_value = [{"number": 57, "html_url": "https://github.com/octo/demo/pull/57"}]
    orch, _, generator = _orchestrator(client)

    result = orch.run(_issue_context())

    assert result.status == "failure"
    generator.run.assert_not_called()
    client.create_comment.assert_not_called()
    client.update_ref.assert_not_called()
