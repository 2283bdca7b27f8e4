"""LLM collaborator contract, OpenAI-compatible client and retry policy."""

from agentcore.llm.client import LLMClient, LLMResponse, OpenAICompatibleClient, Usage
from agentcore.llm.retry import call_with_retry

__all__ = ["LLMClient", "LLMResponse", "OpenAICompatibleClient", "Usage", "call_with_retry"]
