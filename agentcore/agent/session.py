"""Caller-owned agent session: one instance per conversation.

The host constructs it, calls ``init()`` once (optionally resuming from the
session store), drives it with ``run()``, and calls ``dispose()`` at the end.
Turns are serialized by a lock; ``abort()`` may be called from any task.
"""

from __future__ import annotations

import asyncio
import logging

from agentcore.abort import AbortSignal
from agentcore.agent.engine import ExecutionEngine
from agentcore.config import Settings
from agentcore.context.compressor import CompressionResult, HistoryCompressor
from agentcore.context.manager import ContextManager
from agentcore.context.tool_output import ToolOutputSummarizer
from agentcore.errors import AbortedError
from agentcore.events import ExecutionStreamManager
from agentcore.llm.client import LLMClient
from agentcore.session.store import SessionStore
from agentcore.stats import Pricing, StatsManager
from agentcore.tools.registry import ToolRegistry
from agentcore.tools.scheduler import ConfirmCallback, ToolScheduler

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are a coding agent working in the user's workspace. Use the available
tools to inspect and change files and to run commands. Prefer small,
verifiable steps and report what you changed."""


class AgentSession:
    def __init__(
        self,
        settings: Settings,
        llm: LLMClient,
        registry: ToolRegistry | None = None,
        store: SessionStore | None = None,
        session_id: str | None = None,
        confirm: ConfirmCallback | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.settings = settings
        self.session_id = session_id
        self._store = store

        self.stream = ExecutionStreamManager()
        self.stats = StatsManager(
            Pricing(settings.price_input_per_million, settings.price_output_per_million)
        )
        self.context = ContextManager(
            model_limit=settings.model_limit,
            thresholds=settings.thresholds,
            compressor=HistoryCompressor(llm, timeout=settings.summary_timeout),
            stream=self.stream,
            store=store,
            session_id=session_id,
            stats=self.stats,
            enable_compression=settings.enable_compression,
        )
        self.context.set_system_prompt(system_prompt)

        output_summarizer = None
        if settings.enable_tool_summarization:
            output_summarizer = ToolOutputSummarizer(
                llm,
                token_threshold=settings.tool_output_summary,
                timeout=settings.summary_timeout,
            )
        self.scheduler = ToolScheduler(
            registry or ToolRegistry(),
            stream=self.stream,
            approval_mode=settings.approval_mode,
            confirm=confirm,
            output_summarizer=output_summarizer,
            batch_delay=settings.tool_batch_delay,
            workspace_dir=settings.workspace_dir,
        )
        self.engine = ExecutionEngine(
            llm,
            self.context,
            self.scheduler,
            self.stream,
            self.stats,
            max_loops=settings.max_loops,
            max_retries=settings.llm_max_retries,
            retry_base_delay=settings.llm_retry_base_delay,
            retry_max_delay=settings.llm_retry_max_delay,
        )

        self._lock = asyncio.Lock()
        self._signal: AbortSignal | None = None
        self._initialized = False
        self._disposed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Load stored history, rebuilding from a checkpoint when one exists.

        A checkpoint whose message id is no longer in the stored history is
        deleted and the full history is loaded instead.
        """
        if self._initialized:
            return
        self._initialized = True
        if self._store is None or self.session_id is None:
            return

        stored = await self._store.load_messages(self.session_id)
        messages = [s.to_message() for s in stored]
        checkpoint = await self._store.load_checkpoint(self.session_id)

        if checkpoint is None:
            self.context.load_history(messages)
            logger.info("Resumed session %s (%d messages)", self.session_id, len(messages))
            return

        index = next(
            (i for i, m in enumerate(messages) if m.id == checkpoint.load_after_message_id),
            None,
        )
        if index is None:
            logger.warning(
                "Checkpoint for session %s references missing message %s; "
                "discarding checkpoint and loading full history",
                self.session_id,
                checkpoint.load_after_message_id,
            )
            await self._store.delete_checkpoint(self.session_id)
            self.context.load_history(messages)
            return

        self.context.load_transcript(messages)
        self.context.load_with_summary(checkpoint.summary, messages[index + 1 :])
        self.stats.restore(checkpoint.stats)
        logger.info(
            "Resumed session %s from checkpoint (%d of %d messages verbatim)",
            self.session_id,
            len(messages) - index - 1,
            len(messages),
        )

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.abort("Session disposed")
        async with self._lock:
            self.stream.clear_handlers()
            self.scheduler.clear_records()

    async def __aenter__(self) -> "AgentSession":
        await self.init()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._signal is not None

    def abort(self, reason: str = "User aborted") -> None:
        if self._signal is not None:
            logger.info("Aborting turn: %s", reason)
            self._signal.abort(reason)

    async def run(self, user_input: str) -> str:
        """Run one turn. Returns the model's final text.

        On abort the in-flight tool calls are cancelled and the sanitized
        turn is archived before AbortedError is re-raised. Cancelling the
        calling task is handled the same way. Other failures archive the
        turn and re-raise.
        """
        if self._disposed:
            raise RuntimeError("AgentSession has been disposed")
        async with self._lock:
            await self.init()
            signal = AbortSignal()
            self._signal = signal
            self.context.add_user_message(user_input)
            self.stream.start()
            try:
                result = await self.engine.run(signal)
            except AbortedError as e:
                cancelled = self.scheduler.cancel_pending(e.reason)
                logger.info("Turn aborted (%d tool call(s) cancelled)", cancelled)
                await self.context.finish_turn()
                self.stream.cancel(e.reason)
                raise
            except asyncio.CancelledError:
                signal.abort("Task cancelled")
                cancelled = self.scheduler.cancel_pending("Task cancelled")
                logger.info("Turn task cancelled (%d tool call(s) cancelled)", cancelled)
                await self.context.finish_turn()
                self.stream.cancel("Task cancelled")
                raise
            except Exception as e:
                logger.warning("Turn failed: %s", e)
                await self.context.finish_turn()
                self.stream.error(str(e))
                raise
            finally:
                self._signal = None
                self.scheduler.clear_records()

            await self.context.finish_turn()
            self.stream.complete(cost=self.stats.total_cost)
            return result

    async def compress(self) -> CompressionResult | None:
        """Force history compression between turns."""
        async with self._lock:
            return await self.context.compress(force=True)
