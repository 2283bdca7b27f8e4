"""Threshold checks against the model's context limit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from agentcore.context.estimator import format_tokens


@dataclass(frozen=True)
class ContextThresholds:
    compression_trigger: float = 0.70
    compression_preserve: float = 0.30
    overflow_warning: float = 0.95
    tool_output_summary: int = 2000


@dataclass
class ContextCheckResult:
    needs_action: bool
    current_tokens: int
    threshold: int
    limit: int

    @property
    def usage(self) -> float:
        return self.current_tokens / self.limit if self.limit else 1.0


class ContextChecker:
    def __init__(self, model_limit: int, thresholds: ContextThresholds | None = None) -> None:
        self.model_limit = model_limit
        self.thresholds = thresholds or ContextThresholds()

    def update_model_limit(self, limit: int) -> None:
        self.model_limit = limit

    def _check(self, tokens: int, fraction: float) -> ContextCheckResult:
        threshold = int(self.model_limit * fraction)
        return ContextCheckResult(
            needs_action=tokens >= threshold,
            current_tokens=tokens,
            threshold=threshold,
            limit=self.model_limit,
        )

    def check_overflow(self, tokens: int) -> ContextCheckResult:
        return self._check(tokens, self.thresholds.overflow_warning)

    def check_compression(self, tokens: int) -> ContextCheckResult:
        return self._check(tokens, self.thresholds.compression_trigger)

    def get_usage(self, tokens: int) -> dict[str, Any]:
        pct = tokens / self.model_limit * 100 if self.model_limit else 100.0
        return {
            "current": tokens,
            "limit": self.model_limit,
            "percentage": round(pct, 1),
            "formatted": f"{format_tokens(tokens)}/{format_tokens(self.model_limit)} ({pct:.1f}%)",
        }
