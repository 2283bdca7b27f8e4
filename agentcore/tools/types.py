"""Tool capability contract, approval modes, confirmation types and records."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from agentcore.context.models import ToolCall

if TYPE_CHECKING:
    from agentcore.abort import AbortSignal
    from agentcore.events import ExecutionStreamManager
    from agentcore.tools.allowlist import Allowlist


class ApprovalMode(StrEnum):
    DEFAULT = "default"  # confirm every non-read-only tool
    AUTO_EDIT = "autoEdit"  # file edits auto-approved
    YOLO = "yolo"  # everything auto-approved
    FULL_AUTO = "fullAuto"  # alias of yolo

    @property
    def auto_approves_all(self) -> bool:
        return self in (ApprovalMode.YOLO, ApprovalMode.FULL_AUTO)


class ToolCallStatus(StrEnum):
    VALIDATING = "validating"
    AWAITING_APPROVAL = "awaiting_approval"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolCallStatus.SUCCESS, ToolCallStatus.ERROR, ToolCallStatus.CANCELLED)


class ConfirmOutcome(StrEnum):
    ALLOW = "allow"
    ALLOW_ALWAYS = "allowAlways"
    CANCEL = "cancel"


@dataclass
class ConfirmDetails:
    """What the user is asked to approve.

    ``allowlist_key`` is recorded in the allowlist on ``allowAlways`` unless
    the tool supplies its own ``on_confirm`` hook.
    """

    type: Literal["info", "edit", "exec", "other"]
    title: str
    file_path: str | None = None
    file_name: str | None = None
    content_preview: str | None = None
    command: str | None = None
    message: str | None = None
    allowlist_key: str | None = None
    on_confirm: Callable[[ConfirmOutcome], Awaitable[None] | None] | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ToolValue:
    value: Any


@dataclass
class ToolFailure:
    message: str


ToolResult = ToolValue | ToolFailure


def to_tool_result(raw: Any) -> ToolResult:
    """Normalize a handler's return value into the tagged result type."""
    if isinstance(raw, (ToolValue, ToolFailure)):
        return raw
    if isinstance(raw, dict) and raw.get("success") is False:
        return ToolFailure(str(raw.get("error") or "Tool reported failure"))
    return ToolValue(raw)


# ---------------------------------------------------------------------------
# Capability contract
# ---------------------------------------------------------------------------


@dataclass
class ToolContext:
    """Passed to every handler invocation."""

    call_id: str
    signal: AbortSignal
    stream: ExecutionStreamManager | None = None
    approval_mode: ApprovalMode = ApprovalMode.DEFAULT
    workspace_dir: str = "."

    def progress(self, message: str, **extra: Any) -> None:
        """Report nested progress attributed to this call."""
        if self.stream is not None:
            self.stream.tool_progress(self.call_id, message, **extra)


@runtime_checkable
class Tool(Protocol):
    name: str
    description: str
    parameters: dict[str, Any]

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any: ...


@runtime_checkable
class ReadOnlyChecker(Protocol):
    def is_read_only(self) -> bool: ...


@runtime_checkable
class ConfirmationRequirer(Protocol):
    async def should_confirm_execute(
        self,
        args: dict[str, Any],
        mode: ApprovalMode,
        context: ToolContext,
        allowlist: Allowlist,
    ) -> ConfirmDetails | None: ...


def is_read_only(tool: Tool | None) -> bool:
    """Unknown tools and tools without the marker count as not read-only."""
    return isinstance(tool, ReadOnlyChecker) and bool(tool.is_read_only())


# ---------------------------------------------------------------------------
# Scheduler records
# ---------------------------------------------------------------------------


@dataclass
class ToolCallRequest:
    call: ToolCall
    thinking: str | None = None

    @property
    def call_id(self) -> str:
        return self.call.id

    @property
    def name(self) -> str:
        return self.call.name


@dataclass
class SchedulerToolCallRecord:
    request: ToolCallRequest
    status: ToolCallStatus = ToolCallStatus.VALIDATING
    args: dict[str, Any] = field(default_factory=dict)
    confirm_details: ConfirmDetails | None = None
    result: Any = None  # raw value, kept for audit
    result_string: str | None = None  # what the model sees
    error: str | None = None
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    ended_at: float | None = None

    @property
    def call_id(self) -> str:
        return self.request.call_id

    @property
    def tool_name(self) -> str:
        return self.request.name

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return int((self.ended_at - self.started_at) * 1000)


@dataclass
class ScheduleResult:
    call_id: str
    tool_name: str
    status: ToolCallStatus
    result_string: str | None = None
    error: str | None = None
    duration_ms: int | None = None

    @property
    def success(self) -> bool:
        return self.status == ToolCallStatus.SUCCESS
