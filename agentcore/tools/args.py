"""Tool argument decoding.

Some models JSON-encode nested arguments a second time, e.g.
``{"items": "[{\\"a\\": 1}]"}``. Those strings are decoded recursively.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from agentcore.errors import ToolArgumentError

logger = logging.getLogger(__name__)


def _unescape_double(text: str) -> str:
    return text.replace("\\\\n", "\\n").replace('\\\\"', '\\"')


def _loads_lenient(text: str) -> Any:
    """json.loads, retrying once with doubled escapes collapsed."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return json.loads(_unescape_double(text))


def deep_parse_args(value: Any) -> Any:
    """Recursively decode strings that look like JSON arrays or objects.

    Strings that fail to decode are returned unchanged.
    """
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed.startswith(("[", "{")):
            try:
                return deep_parse_args(_loads_lenient(trimmed))
            except json.JSONDecodeError:
                logger.debug("deep_parse_args: leaving undecodable string as is")
        return value
    if isinstance(value, list):
        return [deep_parse_args(v) for v in value]
    if isinstance(value, dict):
        return {k: deep_parse_args(v) for k, v in value.items()}
    return value


def parse_tool_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode a tool call's raw arguments into a dict.

    Raises ToolArgumentError when the payload is not a JSON object.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    if isinstance(raw, dict):
        return deep_parse_args(raw)
    try:
        parsed = _loads_lenient(raw.strip())
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"Invalid JSON arguments: {e.msg} at position {e.pos}") from e
    parsed = deep_parse_args(parsed)
    if not isinstance(parsed, dict):
        raise ToolArgumentError(
            f"Tool arguments must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed
