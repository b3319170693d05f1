"""Tests for core.state models."""

from core.state import (
    ChangeSet,
    FileEdit,
    FinalChangeSet,
    InvocationContext,
    PipelineResult,
    Task,
    TaskKind,
)


def test_task_number_prefers_issue():
    t = Task(kind=TaskKind.NEW_IMPLEMENTATION, content="Add login", issue_number=42)
    assert t.number == 42
    assert not t.is_revision


def test_revision_task_number():
    t = Task(kind=TaskKind.FEEDBACK_REVISION, content="PR", feedback="fix it",
             target_branch="agent/issue-7", change_request_number=57)
    assert t.number == 57
    assert t.is_revision


def test_task_is_immutable():
    t = Task(kind=TaskKind.NEW_IMPLEMENTATION, content="x", issue_number=1)
    try:
        t.content = "y"
    except AttributeError:
        pass
    else:
        raise AssertionError("Task should be frozen")


def test_changeset_last_writer_wins_content():
    cs = ChangeSet()
    assert cs.merge(FileEdit("a.py", "create", "v1")) is True
    assert cs.merge(FileEdit("a.py", "modify", "v2")) is False
    assert len(cs) == 1
    assert cs.get("a.py").content == "v2"
    assert cs.get("a.py").operation == "modify"
    assert cs.revision == 2


def test_changeset_keeps_first_insertion_order():
    cs = ChangeSet()
    cs.merge(FileEdit("b.py", "create", "b"))
    cs.merge(FileEdit("a.py", "create", "a"))
    cs.merge(FileEdit("b.py", "modify", "b2"))
    assert cs.paths() == ["b.py", "a.py"]
    assert "a.py" in cs
    assert "c.py" not in cs
    assert [e.path for e in cs] == ["b.py", "a.py"]


def test_final_changeset_by_operation():
    final = FinalChangeSet(
        files=[FileEdit("a.py", "create", "x"), FileEdit("b.py", "delete")],
        summary="s", tests_added=False, complete=True,
    )
    assert [f.path for f in final.by_operation("create")] == ["a.py"]
    assert [f.path for f in final.by_operation("delete")] == ["b.py"]
    assert final.by_operation("modify") == []


def test_handoff_source_from_client_payload():
    ctx = InvocationContext("repository_dispatch", "bot", "o", "r",
                            payload={"client_payload": {"source": "review-agent"}})
    assert ctx.handoff_source == "review-agent"


def test_handoff_source_from_inputs():
    ctx = InvocationContext("workflow_dispatch", "bot", "o", "r",
                            payload={"inputs": {"source": "review-agent"}})
    assert ctx.handoff_source == "review-agent"


def test_handoff_source_missing():
    ctx = InvocationContext("issues", "alice", "o", "r")
    assert ctx.handoff_source == ""


def test_pipeline_result_ok():
    assert PipelineResult(status="success").ok
    assert PipelineResult(status="dry-run").ok
    assert PipelineResult(status="skipped").ok
    assert not PipelineResult(status="failure").ok
