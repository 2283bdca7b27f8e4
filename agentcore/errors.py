"""Exception hierarchy for turn-level failures.

Tool-level failures never surface as exceptions past the scheduler; they are
recorded on the tool call and reported to the model as message content.
"""

from __future__ import annotations


class AgentCoreError(Exception):
    """Base class for all agentcore errors."""


class ContextOverflowError(AgentCoreError):
    """Context usage is past the overflow threshold; the request was not sent."""

    def __init__(self, current_tokens: int, limit: int) -> None:
        self.current_tokens = current_tokens
        self.limit = limit
        pct = current_tokens / limit * 100 if limit else 100.0
        super().__init__(
            f"Context overflow: {current_tokens}/{limit} tokens ({pct:.1f}%). "
            "Compress the conversation or start a new session."
        )


class LLMError(AgentCoreError):
    """LLM call failed permanently (after retries, or non-retryable)."""


class TransientLLMError(LLMError):
    """Retryable LLM failure (rate limit, server error, timeout)."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ToolArgumentError(AgentCoreError):
    """Tool call arguments could not be parsed."""


class AbortedError(AgentCoreError):
    """The operation observed an aborted signal."""

    def __init__(self, reason: str = "aborted") -> None:
        super().__init__(reason)
        self.reason = reason


class PersistenceError(AgentCoreError):
    """Session store read or write failed."""


class MaxLoopsExceededError(AgentCoreError):
    """The agent loop exceeded its configured iteration cap."""
