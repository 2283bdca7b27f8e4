"""Context management: token budgeting, sanitization, compression."""

from agentcore.context.models import Message, ToolCall

__all__ = ["Message", "ToolCall"]
