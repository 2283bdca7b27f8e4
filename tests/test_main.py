"""Tests for the command-line helpers."""

import pytest

from agentcore.events import EventType, ExecutionEvent
from agentcore.main import build_parser, confirm_on_stdin, print_event
from agentcore.tools.types import ConfirmDetails, ConfirmOutcome


def test_parser_options():
    args = build_parser().parse_args(["-p", "fix the tests", "--session", "s1", "--approval-mode", "autoEdit"])
    assert args.prompt == "fix the tests"
    assert args.session == "s1"
    assert args.approval_mode == "autoEdit"


def test_parser_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["-p", "x", "--approval-mode", "sometimes"])


def test_print_event_writes_tool_lines(capsys):
    print_event(ExecutionEvent(EventType.TOOL_EXECUTING, {"tool_name": "bash", "params_summary": "ls"}))
    print_event(ExecutionEvent(EventType.TOOL_ERROR, {"error": "boom"}))
    err = capsys.readouterr().err
    assert "-> bash ls" in err
    assert "error: boom" in err


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "answer, expected",
    [("y", ConfirmOutcome.ALLOW), ("always", ConfirmOutcome.ALLOW_ALWAYS), ("", ConfirmOutcome.CANCEL)],
)
async def test_confirm_on_stdin(monkeypatch, answer, expected):
    monkeypatch.setattr("builtins.input", lambda prompt: answer)
    details = ConfirmDetails(type="exec", title="Run shell command?", command="ls")
    assert await confirm_on_stdin("c1", "bash", details) == expected
