"""Heuristic token estimation.

CJK ideographs are charged at 1 token per 1.5 characters, everything else
at 1 token per 4 characters, each rounded up. Not a tokenizer match, but
deterministic and monotonic so threshold checks are stable.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable
from dataclasses import asdict, is_dataclass
from typing import Any

from agentcore.context.models import Message

_CJK_RE = re.compile(r"[\u4e00-\u9fff]")

# Role framing overhead per message
MESSAGE_OVERHEAD = 4


def _to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if is_dataclass(content) and not isinstance(content, type):
        content = asdict(content)
    elif isinstance(content, list):
        content = [asdict(c) if is_dataclass(c) and not isinstance(c, type) else c for c in content]
    return json.dumps(content, ensure_ascii=False, default=str)


class TokenEstimator:
    """Stateless estimator; all methods are static."""

    @staticmethod
    def estimate(content: Any) -> int:
        if content is None:
            return 0
        text = _to_text(content)
        if not text:
            return 0
        cjk = len(_CJK_RE.findall(text))
        other = len(text) - cjk
        return math.ceil(cjk / 1.5) + math.ceil(other / 4)

    @staticmethod
    def estimate_message(message: Message) -> int:
        tokens = TokenEstimator.estimate(message.content) + MESSAGE_OVERHEAD
        if message.tool_calls:
            tokens += TokenEstimator.estimate([tc.to_dict() for tc in message.tool_calls])
        if message.tool_call_id:
            tokens += TokenEstimator.estimate(message.tool_call_id)
        if message.name:
            tokens += TokenEstimator.estimate(message.name)
        return tokens

    @staticmethod
    def estimate_messages(messages: Iterable[Message]) -> int:
        return sum(TokenEstimator.estimate_message(m) for m in messages)


def format_tokens(tokens: int) -> str:
    """Render a token count as 999, 1.5K, 2.3M."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)
