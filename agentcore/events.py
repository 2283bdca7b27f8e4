"""Execution event stream: synchronous in-process pub/sub with snapshots.

Handlers are called in subscription order, synchronously, inside emit().
Errors are isolated: one broken handler never blocks the others.

The manager keeps a single aggregate snapshot (phase, in-flight tool,
recent tool calls, running stats) that new subscribers can pull once
instead of replaying history.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

# Cap on tool calls retained in the snapshot
_MAX_TOOL_HISTORY = 50


class EventType(StrEnum):
    EXECUTION_START = "execution:start"
    EXECUTION_COMPLETE = "execution:complete"
    EXECUTION_ERROR = "execution:error"
    EXECUTION_CANCEL = "execution:cancel"
    TOOL_VALIDATING = "tool:validating"
    TOOL_AWAITING_APPROVAL = "tool:awaiting_approval"
    TOOL_EXECUTING = "tool:executing"
    TOOL_COMPLETE = "tool:complete"
    TOOL_ERROR = "tool:error"
    TOOL_CANCELLED = "tool:cancelled"
    TOOL_PROGRESS = "tool:progress"
    THINKING_START = "thinking:start"
    THINKING_DELTA = "thinking:delta"
    THINKING_COMPLETE = "thinking:complete"
    COMPRESSION_START = "compression:start"
    COMPRESSION_COMPLETE = "compression:complete"


class ExecutionState(StrEnum):
    IDLE = "idle"
    THINKING = "thinking"
    TOOL_EXECUTING = "tool_executing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class ExecutionEvent:
    """A typed event flowing through the stream."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


@dataclass
class ExecutionStats:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    tool_call_count: int = 0
    loop_count: int = 0
    cost: float = 0.0
    start_time: float = 0.0
    elapsed: float = 0.0


@dataclass
class ToolCallView:
    """Presentation-side view of one tool call; no domain data."""

    call_id: str
    tool_name: str
    status: str
    params_summary: str = ""
    summary: str = ""
    error: str | None = None
    parent_call_id: str | None = None


@dataclass
class ExecutionSnapshot:
    state: ExecutionState = ExecutionState.IDLE
    stats: ExecutionStats = field(default_factory=ExecutionStats)
    current_tool: ToolCallView | None = None
    tool_calls: list[ToolCallView] = field(default_factory=list)
    thinking: str = ""
    error: str | None = None


EventHandler = Callable[[ExecutionEvent], None]


class ExecutionStreamManager:
    """Broadcasts execution events and maintains the latest snapshot."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._snapshot = ExecutionSnapshot()

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on(self, handler: EventHandler) -> Callable[[], None]:
        """Subscribe *handler*. Returns an idempotent unsubscribe callable."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def clear_handlers(self) -> None:
        self._handlers.clear()

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> ExecutionEvent:
        """Apply the event to the snapshot and deliver it to every handler."""
        event = ExecutionEvent(type=event_type, data=data or {})
        self._apply(event)
        for handler in list(self._handlers):
            self._safe_handle(handler, event)
        return event

    def _safe_handle(self, handler: EventHandler, event: ExecutionEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Handler %s failed for event %s",
                getattr(handler, "__qualname__", repr(handler)),
                event.type,
            )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def get_snapshot(self) -> ExecutionSnapshot:
        """Return a deep copy; callers can never mutate the live snapshot."""
        snapshot = copy.deepcopy(self._snapshot)
        if snapshot.stats.start_time and snapshot.state in (
            ExecutionState.THINKING,
            ExecutionState.TOOL_EXECUTING,
        ):
            snapshot.stats.elapsed = time.time() - snapshot.stats.start_time
        return snapshot

    def reset(self) -> None:
        self._snapshot = ExecutionSnapshot()

    def _find_tool(self, call_id: str | None) -> ToolCallView | None:
        for view in reversed(self._snapshot.tool_calls):
            if view.call_id == call_id:
                return view
        return None

    def _apply(self, event: ExecutionEvent) -> None:
        snap = self._snapshot
        data = event.data
        t = event.type

        if t == EventType.EXECUTION_START:
            self._snapshot = ExecutionSnapshot(
                state=ExecutionState.THINKING,
                stats=ExecutionStats(start_time=event.timestamp),
            )
        elif t in (
            EventType.EXECUTION_COMPLETE,
            EventType.EXECUTION_ERROR,
            EventType.EXECUTION_CANCEL,
        ):
            snap.state = {
                EventType.EXECUTION_COMPLETE: ExecutionState.COMPLETED,
                EventType.EXECUTION_ERROR: ExecutionState.ERROR,
                EventType.EXECUTION_CANCEL: ExecutionState.CANCELLED,
            }[t]
            snap.current_tool = None
            if t == EventType.EXECUTION_ERROR:
                snap.error = data.get("error")
            if "cost" in data:
                snap.stats.cost = data["cost"]
            if snap.stats.start_time:
                snap.stats.elapsed = event.timestamp - snap.stats.start_time
        elif t == EventType.THINKING_START:
            snap.state = ExecutionState.THINKING
            snap.thinking = ""
        elif t == EventType.THINKING_DELTA:
            snap.thinking += data.get("delta", "")
        elif t == EventType.THINKING_COMPLETE:
            if "content" in data:
                snap.thinking = data["content"]
        elif t == EventType.TOOL_VALIDATING:
            view = ToolCallView(
                call_id=data.get("call_id", ""),
                tool_name=data.get("tool_name", ""),
                status="validating",
                params_summary=data.get("params_summary", ""),
                parent_call_id=data.get("parent_call_id"),
            )
            snap.tool_calls.append(view)
            del snap.tool_calls[:-_MAX_TOOL_HISTORY]
        elif t == EventType.TOOL_PROGRESS:
            view = self._find_tool(data.get("call_id"))
            if view is not None:
                view.summary = data.get("message", view.summary)
        elif t.startswith("tool:"):
            view = self._find_tool(data.get("call_id"))
            if view is None:
                return
            view.status = t.removeprefix("tool:")
            if t == EventType.TOOL_EXECUTING:
                snap.state = ExecutionState.TOOL_EXECUTING
                snap.current_tool = view
                snap.stats.tool_call_count += 1
                return
            if t == EventType.TOOL_COMPLETE:
                view.summary = data.get("summary", "")
            elif t in (EventType.TOOL_ERROR, EventType.TOOL_CANCELLED):
                view.error = data.get("error") or data.get("reason")
            if snap.current_tool is view:
                snap.current_tool = None
                snap.state = ExecutionState.THINKING

    # ------------------------------------------------------------------
    # Convenience emitters
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.emit(EventType.EXECUTION_START)

    def complete(self, cost: float | None = None) -> None:
        stats = self._snapshot.stats
        data: dict[str, Any] = {
            "input_tokens": stats.input_tokens,
            "output_tokens": stats.output_tokens,
            "total_tokens": stats.total_tokens,
            "tool_call_count": stats.tool_call_count,
            "loop_count": stats.loop_count,
        }
        if cost is not None:
            data["cost"] = cost
        self.emit(EventType.EXECUTION_COMPLETE, data)

    def cancel(self, reason: str = "cancelled") -> None:
        self.emit(EventType.EXECUTION_CANCEL, {"reason": reason})

    def error(self, message: str) -> None:
        self.emit(EventType.EXECUTION_ERROR, {"error": message})

    def thinking_start(self) -> None:
        self.emit(EventType.THINKING_START)

    def thinking_delta(self, delta: str) -> None:
        self.emit(EventType.THINKING_DELTA, {"delta": delta})

    def thinking_complete(self, content: str | None = None) -> None:
        self.emit(EventType.THINKING_COMPLETE, {} if content is None else {"content": content})

    def tool_progress(self, call_id: str, message: str, **extra: Any) -> None:
        self.emit(EventType.TOOL_PROGRESS, {"call_id": call_id, "message": message, **extra})

    def compression_start(self, tokens: int) -> None:
        self.emit(EventType.COMPRESSION_START, {"tokens": tokens})

    def compression_complete(self, data: dict[str, Any]) -> None:
        self.emit(EventType.COMPRESSION_COMPLETE, data)

    def update_stats(
        self,
        input_tokens: int = 0,
        output_tokens: int = 0,
        loop: bool = False,
    ) -> None:
        """Accumulate token usage; not an event, snapshot only."""
        stats = self._snapshot.stats
        stats.input_tokens += input_tokens
        stats.output_tokens += output_tokens
        stats.total_tokens = stats.input_tokens + stats.output_tokens
        if loop:
            stats.loop_count += 1
