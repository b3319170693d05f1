"""Tests for config.settings."""

from config.settings import AgentConfig, action_input


def test_iterations_clamped_to_hard_max():
    assert AgentConfig(max_iterations=50).max_iterations == 8
    assert AgentConfig(max_iterations=0).max_iterations == 1
    assert AgentConfig(max_iterations=3).max_iterations == 3


def test_action_input_prefers_input_variable(monkeypatch):
    monkeypatch.setenv("INPUT_DRY-RUN", " true ")
    assert action_input("dry-run") == "true"
    assert action_input("missing-input", "fallback") == "fallback"


def test_from_env_reads_action_inputs(monkeypatch):
    monkeypatch.setenv("INPUT_GITHUB-TOKEN", "primary-tok")
    monkeypatch.setenv("INPUT_AGENT-TOKEN", "secondary-tok")
    monkeypatch.setenv("INPUT_MAX-ITERATIONS", "4")
    monkeypatch.setenv("INPUT_DRY-RUN", "true")
    monkeypatch.setenv("INPUT_REVIEW-EVENT", "agent-review")
    monkeypatch.setenv("GITHUB_WORKSPACE", "/work")

    config = AgentConfig.from_env()

    assert config.github_token == "primary-tok"
    assert config.secondary_token == "secondary-tok"
    assert config.max_iterations == 4
    assert config.dry_run is True
    assert config.review_event == "agent-review"
    assert config.workspace == "/work"


def test_from_env_falls_back_to_plain_variables(monkeypatch):
    for name in ("INPUT_GITHUB-TOKEN", "INPUT_MAX-ITERATIONS", "INPUT_DRY-RUN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GITHUB_TOKEN", "env-tok")
    monkeypatch.setenv("AGENT_MAX_ITERATIONS", "not-a-number")
    monkeypatch.setenv("AGENT_DRY_RUN", "no")

    config = AgentConfig.from_env()

    assert config.github_token == "env-tok"
    assert config.max_iterations == 5
    assert config.dry_run is False
