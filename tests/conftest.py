"""Shared fixtures: settings, message builders and a scripted LLM."""

from __future__ import annotations

from typing import Any

import pytest

from agentcore.config import Settings
from agentcore.context.models import Message, ToolCall
from agentcore.llm.client import LLMResponse, Usage


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------


def user(content: str) -> Message:
    return Message(role="user", content=content)


def assistant(content: str = "", *call_ids: str, name: str = "list_files") -> Message:
    return Message(
        role="assistant",
        content=content,
        tool_calls=[ToolCall(id=cid, name=name, arguments="{}") for cid in call_ids],
    )


def tool(call_id: str, content: str = "ok", name: str = "list_files") -> Message:
    return Message(role="tool", content=content, tool_call_id=call_id, name=name)


# ---------------------------------------------------------------------------
# Scripted LLM
# ---------------------------------------------------------------------------


class ScriptedLLM:
    """LLM double: returns queued responses in order; records calls."""

    def __init__(self, responses: list[LLMResponse | Exception] | None = None, summary: str = "") -> None:
        self.responses = list(responses or [])
        self.summary = summary
        self.calls: list[list[Message]] = []
        self.chat_prompts: list[str] = []

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> LLMResponse:
        self.calls.append(list(messages))
        if not self.responses:
            return LLMResponse(content="(no more responses)")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def simple_chat(self, prompt: str, system_prompt: str | None = None) -> str:
        self.chat_prompts.append(prompt)
        return self.summary


def reply(content: str, tool_calls: list[ToolCall] | None = None, tokens: int = 10) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=tool_calls or [],
        finish_reason="tool_calls" if tool_calls else "stop",
        usage=Usage(input_tokens=tokens, output_tokens=tokens),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Isolated settings: no .env, fast delays, temp workspace."""
    return Settings(
        _env_file=None,
        workspace_dir=str(tmp_path / "workspace"),
        tool_batch_delay=0.01,
        llm_retry_base_delay=0.01,
        llm_retry_max_delay=0.05,
        process_kill_grace=0.2,
    )
