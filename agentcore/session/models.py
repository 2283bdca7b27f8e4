"""Pydantic models for persisted session state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from agentcore.context.models import Message


class StoredMessage(BaseModel):
    id: str
    role: str
    content: str = ""
    reasoning_content: str | None = None
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_message(cls, message: Message) -> StoredMessage:
        if message.id is None:
            raise ValueError("Only archived messages (with an id) can be stored")
        data = message.to_dict()
        data.pop("role")
        return cls(id=message.id, role=message.role, **data)

    def to_message(self) -> Message:
        return Message.from_dict(self.model_dump(exclude={"timestamp"}))


class CheckpointStats(BaseModel):
    total_cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0


class SessionCheckpoint(BaseModel):
    """Compression artifact: ``summary`` covers every message up to and
    including ``load_after_message_id``."""

    summary: str
    load_after_message_id: str
    compressed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    stats: CheckpointStats = Field(default_factory=CheckpointStats)


class SessionData(BaseModel):
    session_id: str
    messages: list[StoredMessage] = Field(default_factory=list)
    checkpoint: SessionCheckpoint | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
