"""History compression via LLM summarization.

The older part of the history is summarized into a single user message;
the most recent part (by estimated tokens) is kept verbatim. The split
point never falls inside a tool-call/response unit.

Any failure (timeout, exception, empty summary) leaves the history as it
was. Failing to shrink context is preferable to losing it.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Protocol

from agentcore.context.estimator import TokenEstimator
from agentcore.context.models import Message
from agentcore.context.sanitizer import sanitize_messages

logger = logging.getLogger(__name__)

MIN_MESSAGES = 4
MIN_SPLIT = 2
MAX_MESSAGE_CHARS = 2000
SUMMARY_PREFIX = "[Previous conversation summary]"

COMPRESSION_SYSTEM_PROMPT = """\
You are compressing the earlier part of a coding-agent conversation so the
agent can keep working with a smaller context.

Write a faithful summary that preserves:
- The user's goals, requirements and constraints
- Decisions made and their rationale
- Work completed, files touched, commands run and their outcomes
- Open problems, errors still unresolved, and the next planned steps
- Exact file paths, function names, identifiers and error messages

Do not invent details. Wrap the entire summary in <summary></summary> tags."""

_SUMMARY_RE = re.compile(r"<summary>(.*?)</summary>", re.DOTALL)


class Summarizer(Protocol):
    """Single-shot chat capability used for summarization."""

    async def simple_chat(self, prompt: str, system_prompt: str | None = None) -> str: ...


@dataclass
class CompressionResult:
    compressed: bool
    messages: list[Message]
    original_count: int
    compressed_count: int
    original_tokens: int
    compressed_tokens: int
    summary: str | None = None
    split_index: int = 0
    preserved: list[Message] = field(default_factory=list)


def summary_message(summary: str) -> Message:
    return Message(role="user", content=f"{SUMMARY_PREFIX}\n\n{summary}")


def format_for_summary(messages: list[Message]) -> str:
    """Render messages as role-labeled text for the summarizer."""
    parts = []
    for i, msg in enumerate(messages):
        content = msg.content or ""
        if len(content) > MAX_MESSAGE_CHARS:
            omitted = len(content) - MAX_MESSAGE_CHARS
            content = f"{content[:MAX_MESSAGE_CHARS]}...[truncated {omitted} chars]"
        lines = [f"[{i}] {msg.role.capitalize()}:"]
        if content:
            lines.append(content)
        for tc in msg.tool_calls:
            lines.append(f"-> {tc.name}({tc.arguments[:200]})")
        parts.append("\n".join(lines))
    return "\n\n---\n\n".join(parts)


def extract_summary(response: str) -> str:
    match = _SUMMARY_RE.search(response)
    return (match.group(1) if match else response).strip()


class HistoryCompressor:
    def __init__(self, summarizer: Summarizer, timeout: float = 60.0) -> None:
        self._summarizer = summarizer
        self._timeout = timeout

    @staticmethod
    def find_split_point(history: list[Message], preserve_ratio: float) -> int:
        """Index of the first message kept verbatim.

        Walks back from the end until the preserved tail holds at least
        ``preserve_ratio`` of the estimated tokens, then moves the split
        earlier so it never sits on a tool response or right after an
        assistant message with tool calls.
        """
        total = TokenEstimator.estimate_messages(history)
        target = total * preserve_ratio
        accumulated = 0
        split = len(history)
        for i in range(len(history) - 1, -1, -1):
            accumulated += TokenEstimator.estimate_message(history[i])
            split = i
            if accumulated >= target:
                break

        while split > 0 and (
            (split < len(history) and history[split].role == "tool")
            or history[split - 1].has_tool_calls
        ):
            split -= 1
        return split

    def _unchanged(self, history: list[Message], tokens: int) -> CompressionResult:
        return CompressionResult(
            compressed=False,
            messages=history,
            original_count=len(history),
            compressed_count=len(history),
            original_tokens=tokens,
            compressed_tokens=tokens,
        )

    async def compress(self, history: list[Message], preserve_ratio: float = 0.3) -> CompressionResult:
        original_tokens = TokenEstimator.estimate_messages(history)
        if len(history) < MIN_MESSAGES:
            return self._unchanged(history, original_tokens)

        split = self.find_split_point(history, preserve_ratio)
        if split < MIN_SPLIT:
            logger.debug("Split point %d too early; skipping compression", split)
            return self._unchanged(history, original_tokens)

        to_compress = history[:split]
        preserved = sanitize_messages(history[split:]).messages
        start_time = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._summarizer.simple_chat(
                    format_for_summary(to_compress),
                    system_prompt=COMPRESSION_SYSTEM_PROMPT,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Compression summary timed out after %.0fs", self._timeout)
            return self._unchanged(history, original_tokens)
        except Exception as e:
            logger.warning("Compression failed: %s - keeping full history", e)
            return self._unchanged(history, original_tokens)

        summary = extract_summary(response or "")
        if not summary:
            logger.warning("Compression returned an empty summary - keeping full history")
            return self._unchanged(history, original_tokens)

        messages = [summary_message(summary), *preserved]
        compressed_tokens = TokenEstimator.estimate_messages(messages)
        logger.info(
            "Compressed history: %d messages -> %d (%d -> %d tokens, %d ms)",
            len(history),
            len(messages),
            original_tokens,
            compressed_tokens,
            int((time.monotonic() - start_time) * 1000),
        )
        return CompressionResult(
            compressed=True,
            messages=messages,
            original_count=len(history),
            compressed_count=len(messages),
            original_tokens=original_tokens,
            compressed_tokens=compressed_tokens,
            summary=summary,
            split_index=split,
            preserved=preserved,
        )
