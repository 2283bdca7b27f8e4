"""Cumulative token and cost accounting for a session."""

from __future__ import annotations

from dataclasses import dataclass

from agentcore.session.models import CheckpointStats


@dataclass
class Pricing:
    input_per_million: float = 0.0
    output_per_million: float = 0.0

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_per_million + output_tokens * self.output_per_million
        ) / 1_000_000


class StatsManager:
    def __init__(self, pricing: Pricing | None = None) -> None:
        self.pricing = pricing or Pricing()
        self.input_tokens = 0
        self.output_tokens = 0
        self.total_cost = 0.0
        self.call_count = 0

    def record(self, input_tokens: int, output_tokens: int) -> float:
        """Record one LLM call; returns its cost."""
        cost = self.pricing.cost(input_tokens, output_tokens)
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.total_cost += cost
        self.call_count += 1
        return cost

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_checkpoint_stats(self) -> CheckpointStats:
        return CheckpointStats(
            total_cost=self.total_cost,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )

    def restore(self, stats: CheckpointStats) -> None:
        self.total_cost = stats.total_cost
        self.input_tokens = stats.input_tokens
        self.output_tokens = stats.output_tokens
