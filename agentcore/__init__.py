"""agentcore: orchestration core for a tool-calling coding agent."""

__version__ = "0.1.0"
