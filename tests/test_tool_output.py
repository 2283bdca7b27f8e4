"""Tests for oversized tool output handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentcore.context.tool_output import ToolOutputSummarizer, quick_truncate
from tests.conftest import ScriptedLLM


class SlowSummarizer:
    async def simple_chat(self, prompt, system_prompt=None):
        await asyncio.sleep(10)
        return "late"


class TestQuickTruncate:
    def test_short_text_unchanged(self):
        assert quick_truncate("abc") == "abc"

    def test_line_limit_keeps_head_and_tail(self):
        text = "\n".join(str(i) for i in range(20))
        result = quick_truncate(text, max_lines=4)
        assert result.split("\n") == ["0", "1", "... [16 lines omitted] ...", "18", "19"]

    def test_char_limit(self):
        result = quick_truncate("a" * 50 + "b" * 50, max_chars=10)
        assert result.startswith("aaaaa\n")
        assert result.endswith("\nbbbbb")
        assert "[90 chars omitted]" in result


class TestToolOutputSummarizer:
    @pytest.mark.asyncio
    async def test_small_output_passes_through(self):
        summarizer = ToolOutputSummarizer(ScriptedLLM(summary="S"), token_threshold=100)
        assert await summarizer.summarize("bash", "short") == "short"

    @pytest.mark.asyncio
    async def test_large_output_is_summarized(self):
        llm = ScriptedLLM(summary="3 errors in main.py")
        summarizer = ToolOutputSummarizer(llm, token_threshold=10)
        result = await summarizer.summarize("bash", "x" * 400)
        assert result == "[Summarized output of bash]\n3 errors in main.py"
        assert llm.chat_prompts[0].startswith("Tool: bash")

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_truncation(self):
        llm = MagicMock()
        llm.simple_chat = AsyncMock(side_effect=RuntimeError("model unavailable"))
        summarizer = ToolOutputSummarizer(llm, token_threshold=10)
        output = "y" * 400
        assert await summarizer.summarize("bash", output) == quick_truncate(output)
        llm.simple_chat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_truncation(self):
        summarizer = ToolOutputSummarizer(SlowSummarizer(), token_threshold=10, timeout=0.05)
        assert await summarizer.summarize("bash", "z" * 400) == "z" * 400

    @pytest.mark.asyncio
    async def test_empty_summary_falls_back(self):
        summarizer = ToolOutputSummarizer(ScriptedLLM(summary="  "), token_threshold=10)
        assert await summarizer.summarize("bash", "w" * 400) == "w" * 400
