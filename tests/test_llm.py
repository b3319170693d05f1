"""Tests for utils.llm - payload extraction and client guards."""

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from core.errors import CompletionUnavailable
from utils.llm import call_llm, get_client, parse_agent_response


def test_parse_fenced_json():
    text = 'Here you go:\n```json\n{"files": [], "isComplete": true}\n```\nDone.'
    assert parse_agent_response(text) == {"files": [], "isComplete": True}


def test_parse_bare_fence():
    assert parse_agent_response('```\n{"a": 1}\n```') == {"a": 1}


def test_parse_object_span_with_prose():
    text = 'Sure! {"summary": "x", "nested": {"k": [1, 2]}} Hope this helps.'
    assert parse_agent_response(text) == {"summary": "x", "nested": {"k": [1, 2]}}


def test_parse_whole_text():
    assert parse_agent_response('  {"passed": false}  ') == {"passed": False}


def test_parse_falls_through_bad_fence():
    text = '```\nnot json\n```\n{"ok": true}'
    assert parse_agent_response(text) == {"ok": True}


@pytest.mark.parametrize("text", ["", "   ", None, "no json here", "[1, 2, 3]", "{broken"])
def test_parse_returns_none(text):
    assert parse_agent_response(text) is None


def test_get_client_requires_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(CompletionUnavailable, match="ANTHROPIC_API_KEY"):
        get_client()


def _stream(text, stop_reason="end_turn"):
    stream = MagicMock()
    stream.text_stream = iter([text])
    stream.get_final_message.return_value = MagicMock(stop_reason=stop_reason)
    ctx = MagicMock()
    ctx.__enter__.return_value = stream
    ctx.__exit__.return_value = False
    return ctx


@patch("utils.llm.get_client")
def test_call_llm_returns_text(mock_get_client):
    client = MagicMock()
    client.messages.stream.return_value = _stream('{"a": 1}')
    mock_get_client.return_value = client

    assert call_llm("system", "user", model="m") == '{"a": 1}'
    kwargs = client.messages.stream.call_args.kwargs
    assert kwargs["model"] == "m"
    assert kwargs["system"] == "system"
    assert kwargs["messages"] == [{"role": "user", "content": "user"}]


@patch("utils.llm.get_client")
def test_call_llm_empty_response(mock_get_client):
    client = MagicMock()
    client.messages.stream.return_value = _stream("   ")
    mock_get_client.return_value = client

    with pytest.raises(CompletionUnavailable, match="empty"):
        call_llm("s", "u")


@patch("utils.llm.time.sleep")
@patch("utils.llm.get_client")
def test_call_llm_retries_once(mock_get_client, mock_sleep):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = MagicMock()
    client.messages.stream.side_effect = [
        anthropic.APIConnectionError(request=request),
        _stream("ok"),
    ]
    mock_get_client.return_value = client

    assert call_llm("s", "u") == "ok"
    mock_sleep.assert_called_once_with(2)


@patch("utils.llm.time.sleep")
@patch("utils.llm.get_client")
def test_call_llm_gives_up_after_retry(mock_get_client, mock_sleep):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = MagicMock()
    client.messages.stream.side_effect = anthropic.APIConnectionError(request=request)
    mock_get_client.return_value = client

    with pytest.raises(CompletionUnavailable, match="after retry"):
        call_llm("s", "u")
    assert client.messages.stream.call_count == 2
