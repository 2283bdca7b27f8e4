"""One-line human summaries of tool calls, carried on tool events."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from agentcore.tools.types import ToolFailure, ToolResult

SummaryGenerator = Callable[[str, dict[str, Any], Any], str]

_MAX_PARAM_CHARS = 30


def _path(args: dict[str, Any], data: Any = None) -> str:
    if isinstance(data, dict) and data.get("path"):
        return str(data["path"])
    return str(args.get("path") or args.get("file_path") or "file")


def _read_file(_: str, args: dict[str, Any], data: Any) -> str:
    lines = len(data.splitlines()) if isinstance(data, str) else 0
    return f"Read {lines} lines from {_path(args)}"


def _write_file(_: str, args: dict[str, Any], data: Any) -> str:
    return f"Wrote to {_path(args, data)}"


def _list_files(_: str, args: dict[str, Any], data: Any) -> str:
    count = len(data.get("entries", [])) if isinstance(data, dict) else 0
    return f"Listed {count} items in {args.get('path') or '.'}"


def _bash(_: str, args: dict[str, Any], data: Any) -> str:
    exit_code = data.get("exit_code", 0) if isinstance(data, dict) else 0
    return "Command completed" if exit_code == 0 else f"Command failed (exit {exit_code})"


def _default(tool_name: str, args: dict[str, Any], data: Any) -> str:
    return f"{tool_name} completed"


DEFAULT_GENERATORS: dict[str, SummaryGenerator] = {
    "read_file": _read_file,
    "write_file": _write_file,
    "list_files": _list_files,
    "bash": _bash,
}


def generate_summary(
    tool_name: str,
    args: dict[str, Any],
    result: ToolResult,
    generators: dict[str, SummaryGenerator] | None = None,
) -> str:
    if isinstance(result, ToolFailure):
        return f"{tool_name} failed: {result.message}"
    registry = {**DEFAULT_GENERATORS, **(generators or {})}
    return registry.get(tool_name, _default)(tool_name, args, result.value)


def generate_params_summary(tool_name: str, args: dict[str, Any]) -> str:
    """Main argument of the call, shortened for display."""
    if tool_name in ("read_file", "write_file", "list_files"):
        return str(args.get("path") or args.get("file_path") or "")
    if tool_name == "bash":
        value = str(args.get("command") or "")
    else:
        value = next((str(v) for v in args.values() if isinstance(v, str)), "")
    if len(value) > _MAX_PARAM_CHARS:
        return value[:_MAX_PARAM_CHARS] + "..."
    return value
