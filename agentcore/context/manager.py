"""Context manager: owns the system prompt, history and in-progress turn.

Assembly order is fixed:

    [system prompt] + history + [pending user input] + current turn

and the assembled list is always passed through the sanitizer before it is
handed to the model.

Two message lists are kept:
  - ``history``: the working context (may start with a summary message)
  - ``transcript``: every archived message, never compressed; this is what
    the session store persists and what checkpoints point into.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from agentcore.context.checker import ContextChecker, ContextCheckResult, ContextThresholds
from agentcore.context.compressor import CompressionResult, HistoryCompressor, summary_message
from agentcore.context.estimator import TokenEstimator
from agentcore.context.models import Message, ToolCall
from agentcore.context.sanitizer import sanitize_current_turn, sanitize_messages
from agentcore.errors import PersistenceError
from agentcore.events import ExecutionStreamManager
from agentcore.session.models import SessionCheckpoint, StoredMessage
from agentcore.session.store import SessionStore
from agentcore.stats import StatsManager

logger = logging.getLogger(__name__)


def _new_message_id() -> str:
    return uuid.uuid4().hex


class ContextManager:
    def __init__(
        self,
        model_limit: int,
        thresholds: ContextThresholds | None = None,
        compressor: HistoryCompressor | None = None,
        stream: ExecutionStreamManager | None = None,
        store: SessionStore | None = None,
        session_id: str | None = None,
        stats: StatsManager | None = None,
        enable_compression: bool = True,
    ) -> None:
        self.checker = ContextChecker(model_limit, thresholds)
        self._compressor = compressor
        self._stream = stream
        self._store = store
        self.session_id = session_id
        self._stats = stats
        self.enable_compression = enable_compression and compressor is not None

        self.system_prompt = ""
        self._history: list[Message] = []
        self._transcript: list[Message] = []
        self._pending_user: Message | None = None
        self._turn: list[Message] = []

    @property
    def thresholds(self) -> ContextThresholds:
        return self.checker.thresholds

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt

    def add_user_message(self, content: str) -> None:
        """Set the pending user input for the current turn."""
        if self._pending_user is not None:
            logger.warning("Replacing pending user input that was never archived")
        self._pending_user = Message(role="user", content=content)

    def add_assistant_message(
        self,
        content: str,
        tool_calls: list[ToolCall] | None = None,
        reasoning_content: str | None = None,
    ) -> Message:
        message = Message(
            role="assistant",
            content=content,
            tool_calls=list(tool_calls or []),
            reasoning_content=reasoning_content,
        )
        self._turn.append(message)
        return message

    def add_tool_message(self, tool_call_id: str, name: str, content: str) -> Message:
        message = Message(role="tool", content=content, tool_call_id=tool_call_id, name=name)
        self._turn.append(message)
        return message

    def get_history(self) -> list[Message]:
        return list(self._history)

    def get_transcript(self) -> list[Message]:
        return list(self._transcript)

    def get_current_turn(self) -> list[Message]:
        return list(self._turn)

    @property
    def pending_user_input(self) -> str | None:
        return self._pending_user.content if self._pending_user else None

    def clear(self) -> None:
        self._history.clear()
        self._transcript.clear()
        self._turn.clear()
        self._pending_user = None

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _assemble_raw(self) -> list[Message]:
        messages: list[Message] = []
        if self.system_prompt:
            messages.append(Message(role="system", content=self.system_prompt))
        messages.extend(self._history)
        if self._pending_user is not None:
            messages.append(self._pending_user)
        messages.extend(self._turn)
        return messages

    def assemble(self) -> list[Message]:
        return sanitize_messages(self._assemble_raw()).messages

    def estimate_tokens(self) -> int:
        return TokenEstimator.estimate_messages(self.assemble())

    async def get_context(self, auto_compress: bool = True) -> list[Message]:
        """Sanitized message list for the next model call.

        Compresses stored history first when usage is past the trigger.
        """
        if auto_compress and self.enable_compression:
            tokens = self.estimate_tokens()
            if self.checker.check_compression(tokens).needs_action:
                logger.info(
                    "Context at %s, compressing history",
                    self.checker.get_usage(tokens)["formatted"],
                )
                await self._compress_history(tokens)
        return self.assemble()

    def check_overflow(self) -> ContextCheckResult:
        return self.checker.check_overflow(self.estimate_tokens())

    def is_overflow(self) -> bool:
        return self.check_overflow().needs_action

    def get_usage(self) -> dict[str, Any]:
        return self.checker.get_usage(self.estimate_tokens())

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    async def compress(self, force: bool = False) -> CompressionResult | None:
        """Manual compression. Without *force* it only runs past the trigger."""
        if self._compressor is None:
            return None
        tokens = self.estimate_tokens()
        if not force and not self.checker.check_compression(tokens).needs_action:
            return None
        return await self._compress_history(tokens)

    async def _compress_history(self, tokens: int) -> CompressionResult:
        assert self._compressor is not None
        if self._stream:
            self._stream.compression_start(tokens)

        history = self._history
        result = await self._compressor.compress(
            history, self.thresholds.compression_preserve
        )

        if result.compressed and result.summary is not None:
            covered = history[result.split_index - 1]
            summary_msg = result.messages[0]
            summary_msg.id = _new_message_id()
            self._history = list(result.messages)
            if covered.id is not None:
                await self.persist_transcript()
                await self._persist_checkpoint(result.summary, covered.id)

        if self._stream:
            self._stream.compression_complete(
                {
                    "compressed": result.compressed,
                    "original_count": result.original_count,
                    "compressed_count": result.compressed_count,
                    "original_tokens": result.original_tokens,
                    "compressed_tokens": result.compressed_tokens,
                }
            )
        return result

    async def _persist_checkpoint(self, summary: str, load_after_message_id: str) -> None:
        if self._store is None or self.session_id is None:
            return
        checkpoint = SessionCheckpoint(
            summary=summary,
            load_after_message_id=load_after_message_id,
        )
        if self._stats is not None:
            checkpoint.stats = self._stats.to_checkpoint_stats()
        try:
            await self._store.save_checkpoint(self.session_id, checkpoint)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save checkpoint: {e}") from e

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    async def finish_turn(self) -> list[Message]:
        """Archive pending input plus the current turn into history.

        The turn is sanitized first so an interrupted tool-call unit is
        never archived. Returns the archived messages.
        """
        turn: list[Message] = []
        if self._pending_user is not None:
            turn.append(self._pending_user)
        turn.extend(sanitize_current_turn(self._turn).messages)

        for message in turn:
            if message.id is None:
                message.id = _new_message_id()

        self._history.extend(turn)
        self._transcript.extend(turn)
        self._turn = []
        self._pending_user = None

        if turn:
            await self.persist_transcript()
        return turn

    async def persist_transcript(self) -> None:
        if self._store is None or self.session_id is None:
            return
        try:
            await self._store.save_messages(
                self.session_id,
                [StoredMessage.from_message(m) for m in self._transcript],
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save messages: {e}") from e

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def load_history(self, messages: list[Message]) -> None:
        """Replace history and transcript with *messages* (no summary)."""
        self._history = list(messages)
        self._transcript = list(messages)

    def load_transcript(self, messages: list[Message]) -> None:
        self._transcript = list(messages)

    def load_with_summary(self, summary: str, tail_messages: list[Message]) -> None:
        """Rebuild history as [summary, *tail] when resuming from a checkpoint."""
        message = summary_message(summary)
        message.id = _new_message_id()
        self._history = [message, *tail_messages]
