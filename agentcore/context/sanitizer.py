"""Structural repair of message sequences for tool-calling chat APIs.

Two passes:
  Pass 1: an assistant message with tool calls is kept only if every call id
          is answered in the run of tool messages directly after it. If any
          answer is missing, the assistant message and the answers it did get
          are dropped together.
  Pass 2: tool messages that do not answer a surviving assistant's call in
          that same run (orphans, duplicates) are dropped.

Removals are reported on the result and logged at WARNING; they are never
raised as errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from agentcore.context.models import Message

logger = logging.getLogger(__name__)


@dataclass
class RemovedMessage:
    index: int
    role: str
    reason: str


@dataclass
class SanitizeResult:
    messages: list[Message]
    removed: list[RemovedMessage] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def sanitized(self) -> bool:
        return bool(self.removed)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _find_incomplete_units(messages: list[Message]) -> dict[int, str]:
    """Pass 1: map index -> reason for every message in an incomplete unit."""
    doomed: dict[int, str] = {}
    for i, msg in enumerate(messages):
        if not msg.has_tool_calls:
            continue
        expected = {tc.id for tc in msg.tool_calls}
        answered: set[str] = set()
        belonging: list[int] = []
        j = i + 1
        while j < len(messages) and messages[j].role == "tool":
            call_id = messages[j].tool_call_id
            if call_id in expected and call_id not in answered:
                answered.add(call_id)
                belonging.append(j)
            j += 1
        missing = expected - answered
        if missing:
            ids = ", ".join(sorted(missing))
            doomed[i] = f"assistant tool calls missing responses: {ids}"
            for k in belonging:
                doomed[k] = f"response {messages[k].tool_call_id} belongs to incomplete tool-call unit"
    return doomed


def _find_orphans(indexed: list[tuple[int, Message]]) -> dict[int, str]:
    """Pass 2: tool messages not answering an open call of the preceding assistant."""
    orphans: dict[int, str] = {}
    open_ids: set[str] = set()
    for index, msg in indexed:
        if msg.role == "tool":
            if msg.tool_call_id in open_ids:
                open_ids.discard(msg.tool_call_id)
            else:
                orphans[index] = f"orphan tool response: {msg.tool_call_id}"
            continue
        open_ids = {tc.id for tc in msg.tool_calls} if msg.has_tool_calls else set()
    return orphans


def sanitize_messages(messages: list[Message]) -> SanitizeResult:
    """Return *messages* with every incomplete tool-call unit and orphan removed.

    The input list is never mutated. When nothing is removed the result
    holds a shallow copy of the input.
    """
    doomed = _find_incomplete_units(messages)
    survivors = [(i, m) for i, m in enumerate(messages) if i not in doomed]
    doomed.update(_find_orphans(survivors))

    if not doomed:
        return SanitizeResult(messages=list(messages))

    removed = [
        RemovedMessage(index=i, role=messages[i].role, reason=reason)
        for i, reason in sorted(doomed.items())
    ]
    kept = [m for i, m in enumerate(messages) if i not in doomed]
    logger.warning(
        "Sanitized message list: removed %d of %d messages (%s)",
        len(removed),
        len(messages),
        "; ".join(f"[{r.index}] {r.role}: {r.reason}" for r in removed),
    )
    return SanitizeResult(messages=kept, removed=removed)


def sanitize_current_turn(messages: list[Message]) -> SanitizeResult:
    """Sanitize an interrupted turn before it is archived."""
    result = sanitize_messages(messages)
    if result.sanitized:
        logger.warning(
            "Interrupted turn left %d incomplete message(s); dropped before archive",
            result.removed_count,
        )
    return result


def validate_messages(messages: list[Message]) -> ValidationResult:
    """Read-only check using the sanitizer's rules."""
    doomed = _find_incomplete_units(messages)
    doomed.update(_find_orphans([(i, m) for i, m in enumerate(messages) if i not in doomed]))
    errors = [f"[{i}] {messages[i].role}: {reason}" for i, reason in sorted(doomed.items())]
    return ValidationResult(valid=not errors, errors=errors)
