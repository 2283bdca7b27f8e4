"""Tool registry, scheduling and built-in tools."""

from agentcore.tools.allowlist import Allowlist
from agentcore.tools.registry import FunctionTool, ToolRegistry
from agentcore.tools.scheduler import ToolScheduler
from agentcore.tools.types import (
    ApprovalMode,
    ConfirmDetails,
    ConfirmOutcome,
    ToolCallStatus,
    ToolContext,
)

__all__ = [
    "Allowlist",
    "ApprovalMode",
    "ConfirmDetails",
    "ConfirmOutcome",
    "FunctionTool",
    "ToolCallStatus",
    "ToolContext",
    "ToolRegistry",
    "ToolScheduler",
]
