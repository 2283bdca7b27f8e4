"""The agent loop: context -> LLM -> tools -> context, until a final answer."""

from __future__ import annotations

import json
import logging

from agentcore.abort import AbortSignal
from agentcore.context.manager import ContextManager
from agentcore.errors import AbortedError, ContextOverflowError, MaxLoopsExceededError
from agentcore.events import ExecutionStreamManager
from agentcore.llm.client import LLMClient, LLMResponse
from agentcore.llm.retry import call_with_retry
from agentcore.stats import StatsManager
from agentcore.tools.scheduler import ToolScheduler
from agentcore.tools.types import ScheduleResult

logger = logging.getLogger(__name__)


def tool_message_content(result: ScheduleResult) -> str:
    """What the model sees for one tool call."""
    if result.success:
        return result.result_string or ""
    return json.dumps(
        {"status": str(result.status), "message": result.error or ""},
        ensure_ascii=False,
    )


class ExecutionEngine:
    def __init__(
        self,
        llm: LLMClient,
        context: ContextManager,
        scheduler: ToolScheduler,
        stream: ExecutionStreamManager,
        stats: StatsManager,
        max_loops: int = 100,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ) -> None:
        self._llm = llm
        self._context = context
        self._scheduler = scheduler
        self._stream = stream
        self._stats = stats
        self.max_loops = max_loops
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

    async def _complete(self, signal: AbortSignal) -> LLMResponse:
        messages = await self._context.get_context(auto_compress=True)

        overflow = self._context.check_overflow()
        if overflow.needs_action:
            raise ContextOverflowError(overflow.current_tokens, overflow.limit)

        tools = self._scheduler.registry.definitions() or None
        return await call_with_retry(
            lambda: signal.race(self._llm.complete(messages, tools=tools)),
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
            signal=signal,
        )

    async def run(self, signal: AbortSignal) -> str:
        """Run the pending user input to completion. Returns the final text.

        Raises AbortedError on abort, ContextOverflowError, LLMError after
        retries, and MaxLoopsExceededError.
        """
        loops = 0
        while True:
            signal.throw_if_aborted()
            if loops >= self.max_loops:
                raise MaxLoopsExceededError(f"Exceeded {self.max_loops} loop iterations")
            loops += 1

            response = await self._complete(signal)
            self._stats.record(response.usage.input_tokens, response.usage.output_tokens)
            self._stream.update_stats(
                response.usage.input_tokens, response.usage.output_tokens, loop=True
            )
            if response.reasoning_content:
                self._stream.thinking_start()
                self._stream.thinking_complete(response.reasoning_content)

            self._context.add_assistant_message(
                response.content,
                tool_calls=response.tool_calls,
                reasoning_content=response.reasoning_content,
            )
            if not response.tool_calls:
                logger.debug("Turn finished after %d loop(s)", loops)
                return response.content

            results = await self._scheduler.schedule_batch(
                response.tool_calls,
                signal,
                thinking=response.content or response.reasoning_content,
            )
            for result in results:
                self._context.add_tool_message(
                    result.call_id, result.tool_name, tool_message_content(result)
                )

            if signal.aborted:
                raise AbortedError(signal.reason or "aborted")
