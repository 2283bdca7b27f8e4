"""Post-processing for oversized tool output before it reaches the model."""

from __future__ import annotations

import asyncio
import logging

from agentcore.context.compressor import Summarizer
from agentcore.context.estimator import TokenEstimator

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 100_000
MAX_OUTPUT_LINES = 1000

TOOL_OUTPUT_SYSTEM_PROMPT = """\
You condense tool output for a coding agent. Keep every error message,
file path, line number, count and identifier exactly as written. Drop
repetition and boilerplate. Output only the condensed result."""


def quick_truncate(
    text: str,
    max_chars: int = MAX_OUTPUT_CHARS,
    max_lines: int = MAX_OUTPUT_LINES,
) -> str:
    """Keep head and tail of *text*, dropping the middle."""
    lines = text.split("\n")
    if len(lines) > max_lines:
        head = max_lines // 2
        tail = max_lines - head
        omitted = len(lines) - max_lines
        text = "\n".join(
            [*lines[:head], f"... [{omitted} lines omitted] ...", *lines[-tail:]]
        )
    if len(text) > max_chars:
        head = max_chars // 2
        tail = max_chars - head
        omitted = len(text) - max_chars
        text = f"{text[:head]}\n... [{omitted} chars omitted] ...\n{text[-tail:]}"
    return text


class ToolOutputSummarizer:
    def __init__(
        self,
        summarizer: Summarizer | None,
        token_threshold: int = 2000,
        timeout: float = 60.0,
    ) -> None:
        self._summarizer = summarizer
        self.token_threshold = token_threshold
        self._timeout = timeout

    def needs_summary(self, output: str) -> bool:
        return TokenEstimator.estimate(output) > self.token_threshold

    async def summarize(self, tool_name: str, output: str) -> str:
        if not self.needs_summary(output):
            return output
        truncated = quick_truncate(output)
        if self._summarizer is None:
            return truncated
        prompt = f"Tool: {tool_name}\n\nOutput:\n{truncated}"
        try:
            summary = await asyncio.wait_for(
                self._summarizer.simple_chat(prompt, system_prompt=TOOL_OUTPUT_SYSTEM_PROMPT),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("Tool output summary for %s failed: %s - truncating", tool_name, e)
            return truncated
        summary = (summary or "").strip()
        if not summary:
            return truncated
        logger.info(
            "Summarized %s output: %d -> %d tokens",
            tool_name,
            TokenEstimator.estimate(output),
            TokenEstimator.estimate(summary),
        )
        return f"[Summarized output of {tool_name}]\n{summary}"
