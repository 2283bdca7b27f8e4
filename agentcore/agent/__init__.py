"""Agent loop and caller-owned session lifecycle."""

from agentcore.agent.engine import ExecutionEngine
from agentcore.agent.session import AgentSession

__all__ = ["AgentSession", "ExecutionEngine"]
