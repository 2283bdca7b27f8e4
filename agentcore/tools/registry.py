"""Tool registry and a function-backed tool adapter."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from agentcore.tools.allowlist import Allowlist
from agentcore.tools.types import (
    ApprovalMode,
    ConfirmDetails,
    Tool,
    ToolContext,
    is_read_only,
)

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]
ConfirmHook = Callable[
    [dict[str, Any], ApprovalMode, ToolContext, Allowlist],
    Awaitable[ConfirmDetails | None],
]


class FunctionTool:
    """Adapts an async ``handler(args, context)`` to the tool contract.

    ``confirm`` is optional; when omitted the scheduler's default rule
    applies (confirm unless read-only).
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any],
        handler: Handler,
        read_only: bool = False,
        confirm: ConfirmHook | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = parameters
        self._handler = handler
        self._read_only = read_only
        self._confirm = confirm
        if confirm is not None:
            self.should_confirm_execute = self._should_confirm_execute

    def is_read_only(self) -> bool:
        return self._read_only

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        return await self._handler(args, context)

    async def _should_confirm_execute(
        self,
        args: dict[str, Any],
        mode: ApprovalMode,
        context: ToolContext,
        allowlist: Allowlist,
    ) -> ConfirmDetails | None:
        assert self._confirm is not None
        return await self._confirm(args, mode, context, allowlist)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning("Replacing registered tool: %s", tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def is_read_only(self, name: str) -> bool:
        return is_read_only(self._tools.get(name))

    def definitions(self) -> list[dict[str, Any]]:
        """Tool definitions in OpenAI function-calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in self._tools.values()
        ]
