"""Session persistence: messages, compression checkpoints, session data."""

from agentcore.session.models import (
    CheckpointStats,
    SessionCheckpoint,
    SessionData,
    StoredMessage,
)
from agentcore.session.store import FileSessionStore, InMemorySessionStore, SessionStore

__all__ = [
    "CheckpointStats",
    "FileSessionStore",
    "InMemorySessionStore",
    "SessionCheckpoint",
    "SessionData",
    "SessionStore",
    "StoredMessage",
]
