"""Built-in workspace tools: bash, read_file, write_file, list_files.

Paths are confined to the workspace directory. ``bash`` and ``write_file``
have side effects and supply their own confirmation details; ``read_file``
and ``list_files`` are read-only and may run in parallel.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Any

from agentcore.config import Settings
from agentcore.errors import AbortedError
from agentcore.tools.allowlist import Allowlist
from agentcore.tools.process import run_command
from agentcore.tools.registry import FunctionTool, ToolRegistry
from agentcore.tools.types import ApprovalMode, ConfirmDetails, ToolContext

logger = logging.getLogger(__name__)

# Limits
_MAX_BASH_TIMEOUT = 300  # seconds
_MAX_OUTPUT_CHARS = 100 * 1024  # 100KB
_MAX_FILE_SIZE = 1 * 1024 * 1024  # 1MB
_MAX_LIST_ENTRIES = 500


def _validate_path(path_str: str, workspace_dir: str) -> Path:
    """Resolve *path_str* inside the workspace. Raises ValueError if it escapes."""
    workspace = Path(workspace_dir).resolve()
    path = Path(path_str)
    target = path.resolve() if path.is_absolute() else (workspace / path).resolve()
    if not target.is_relative_to(workspace):
        raise ValueError(f"Path '{path_str}' is outside workspace '{workspace_dir}'")
    return target


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


def _truncate(text: str, label: str) -> str:
    if len(text) > _MAX_OUTPUT_CHARS:
        return text[:_MAX_OUTPUT_CHARS] + f"\n... [{label} truncated at 100KB]"
    return text


def command_root(command: str) -> str:
    """First word of a shell command, used as its allowlist key."""
    try:
        parts = shlex.split(command)
    except ValueError:
        parts = command.split()
    return Path(parts[0]).name if parts else ""


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

BASH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "command": {"type": "string", "description": "Shell command to execute"},
        "timeout": {
            "type": "integer",
            "description": "Timeout in seconds (default 30, max 300)",
            "default": 30,
        },
    },
    "required": ["command"],
}

READ_FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "File path relative to the workspace"},
        "offset": {"type": "integer", "description": "First line to read (1-based)", "default": 1},
        "limit": {"type": "integer", "description": "Maximum lines to read"},
    },
    "required": ["path"],
}

WRITE_FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "File path relative to the workspace"},
        "content": {"type": "string", "description": "Full file content to write"},
    },
    "required": ["path", "content"],
}

LIST_FILES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "Directory relative to the workspace", "default": "."},
    },
}


# ---------------------------------------------------------------------------
# Tool factories
# ---------------------------------------------------------------------------


def make_bash_tool(workspace_dir: str, kill_grace: float = 0.5) -> FunctionTool:
    async def handler(args: dict[str, Any], context: ToolContext) -> Any:
        command = args.get("command", "")
        if not command.strip():
            return _failure("command is required")
        timeout = max(1, min(int(args.get("timeout", 30)), _MAX_BASH_TIMEOUT))

        workspace = Path(workspace_dir)
        workspace.mkdir(parents=True, exist_ok=True)
        result = await run_command(
            command,
            cwd=str(workspace),
            timeout=timeout,
            signal=context.signal,
            grace=kill_grace,
        )
        if result.aborted:
            raise AbortedError(context.signal.reason or "aborted")
        if result.timed_out:
            return _failure(f"Command timed out after {timeout}s: {command}")

        stdout = _truncate(result.stdout, "output")
        stderr = _truncate(result.stderr, "stderr")
        if result.exit_code != 0:
            detail = "\n".join(p for p in (stdout, f"STDERR:\n{stderr}" if stderr else "") if p)
            return _failure(f"Exit code {result.exit_code}\n{detail}".rstrip())
        return {"exit_code": 0, "stdout": stdout, "stderr": stderr}

    async def confirm(
        args: dict[str, Any],
        mode: ApprovalMode,
        context: ToolContext,
        allowlist: Allowlist,
    ) -> ConfirmDetails | None:
        command = args.get("command", "")
        key = f"bash:{command_root(command)}"
        if allowlist.has(key):
            return None
        return ConfirmDetails(
            type="exec",
            title="Run shell command?",
            command=command,
            allowlist_key=key,
        )

    return FunctionTool(
        name="bash",
        description="Execute a shell command in the workspace directory.",
        parameters=BASH_SCHEMA,
        handler=handler,
        confirm=confirm,
    )


def make_read_file_tool(workspace_dir: str) -> FunctionTool:
    def _read(path: str, offset: int, limit: int | None) -> Any:
        try:
            target = _validate_path(path, workspace_dir)
        except ValueError as e:
            return _failure(str(e))
        if not target.is_file():
            return _failure(f"File not found: {path}")
        if target.stat().st_size > _MAX_FILE_SIZE:
            return _failure(f"File too large (> 1MB): {path}")
        lines = target.read_text(encoding="utf-8", errors="replace").splitlines()
        start = max(offset, 1) - 1
        end = start + limit if limit else len(lines)
        return "\n".join(lines[start:end])

    async def handler(args: dict[str, Any], context: ToolContext) -> Any:
        return await asyncio.to_thread(
            _read, args.get("path", ""), int(args.get("offset", 1)), args.get("limit")
        )

    return FunctionTool(
        name="read_file",
        description="Read a text file from the workspace.",
        parameters=READ_FILE_SCHEMA,
        handler=handler,
        read_only=True,
    )


def make_write_file_tool(workspace_dir: str) -> FunctionTool:
    def _write(path: str, content: str) -> Any:
        try:
            target = _validate_path(path, workspace_dir)
        except ValueError as e:
            return _failure(str(e))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return {"path": path, "bytes": len(content.encode("utf-8"))}

    async def handler(args: dict[str, Any], context: ToolContext) -> Any:
        return await asyncio.to_thread(_write, args.get("path", ""), args.get("content", ""))

    async def confirm(
        args: dict[str, Any],
        mode: ApprovalMode,
        context: ToolContext,
        allowlist: Allowlist,
    ) -> ConfirmDetails | None:
        path = args.get("path", "")
        key = f"write_file:{path}"
        if mode == ApprovalMode.AUTO_EDIT or allowlist.has(key):
            return None
        content = args.get("content", "")
        return ConfirmDetails(
            type="edit",
            title=f"Write {path}?",
            file_path=path,
            file_name=Path(path).name,
            content_preview=content[:500],
            allowlist_key=key,
        )

    return FunctionTool(
        name="write_file",
        description="Write content to a file in the workspace, replacing it.",
        parameters=WRITE_FILE_SCHEMA,
        handler=handler,
        confirm=confirm,
    )


def make_list_files_tool(workspace_dir: str) -> FunctionTool:
    def _list(path: str) -> Any:
        try:
            target = _validate_path(path, workspace_dir)
        except ValueError as e:
            return _failure(str(e))
        if not target.is_dir():
            return _failure(f"Not a directory: {path}")
        entries = sorted(
            f"{p.name}/" if p.is_dir() else p.name for p in target.iterdir()
        )
        return {"path": path, "entries": entries[:_MAX_LIST_ENTRIES]}

    async def handler(args: dict[str, Any], context: ToolContext) -> Any:
        return await asyncio.to_thread(_list, args.get("path") or ".")

    return FunctionTool(
        name="list_files",
        description="List the entries of a workspace directory.",
        parameters=LIST_FILES_SCHEMA,
        handler=handler,
        read_only=True,
    )


def register_builtin_tools(registry: ToolRegistry, settings: Settings) -> None:
    workspace = settings.workspace_dir
    registry.register(make_bash_tool(workspace, settings.process_kill_grace))
    registry.register(make_read_file_tool(workspace))
    registry.register(make_write_file_tool(workspace))
    registry.register(make_list_files_tool(workspace))
    logger.info("Registered built-in tools (workspace: %s)", workspace)
