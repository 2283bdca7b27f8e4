"""Session store contract plus in-memory and JSON-file implementations.

Writes are durable once the awaitable returns; reads return the most recent
successful write. Backend failures surface as PersistenceError.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from agentcore.errors import PersistenceError
from agentcore.session.models import SessionCheckpoint, SessionData, StoredMessage

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class SessionStore(Protocol):
    async def save_messages(self, session_id: str, messages: list[StoredMessage]) -> None: ...

    async def load_messages(self, session_id: str) -> list[StoredMessage]: ...

    async def save_checkpoint(self, session_id: str, checkpoint: SessionCheckpoint) -> None: ...

    async def load_checkpoint(self, session_id: str) -> SessionCheckpoint | None: ...

    async def delete_checkpoint(self, session_id: str) -> None: ...

    async def save_session_data(self, data: SessionData) -> None: ...

    async def load_session_data(self, session_id: str) -> SessionData | None: ...

    async def exists(self, session_id: str) -> bool: ...

    async def delete(self, session_id: str) -> None: ...

    async def list_sessions(self) -> list[str]: ...


class InMemorySessionStore:
    """Dict-backed store; copies on every read and write."""

    def __init__(self) -> None:
        self._data: dict[str, SessionData] = {}

    def _get(self, session_id: str) -> SessionData:
        if session_id not in self._data:
            self._data[session_id] = SessionData(session_id=session_id)
        return self._data[session_id]

    async def save_messages(self, session_id: str, messages: list[StoredMessage]) -> None:
        self._get(session_id).messages = [m.model_copy() for m in messages]

    async def load_messages(self, session_id: str) -> list[StoredMessage]:
        data = self._data.get(session_id)
        return [m.model_copy() for m in data.messages] if data else []

    async def save_checkpoint(self, session_id: str, checkpoint: SessionCheckpoint) -> None:
        self._get(session_id).checkpoint = checkpoint.model_copy(deep=True)

    async def load_checkpoint(self, session_id: str) -> SessionCheckpoint | None:
        data = self._data.get(session_id)
        if data is None or data.checkpoint is None:
            return None
        return data.checkpoint.model_copy(deep=True)

    async def delete_checkpoint(self, session_id: str) -> None:
        if session_id in self._data:
            self._data[session_id].checkpoint = None

    async def save_session_data(self, data: SessionData) -> None:
        self._data[data.session_id] = data.model_copy(deep=True)

    async def load_session_data(self, session_id: str) -> SessionData | None:
        data = self._data.get(session_id)
        return data.model_copy(deep=True) if data else None

    async def exists(self, session_id: str) -> bool:
        return session_id in self._data

    async def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    async def list_sessions(self) -> list[str]:
        return sorted(self._data)


class FileSessionStore:
    """One JSON document per session under *root*, replaced atomically."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._lock = asyncio.Lock()

    def _path(self, session_id: str) -> Path:
        if not _SAFE_ID_RE.match(session_id):
            raise PersistenceError(f"Invalid session id: {session_id!r}")
        return self._root / f"{session_id}.json"

    def _read(self, session_id: str) -> SessionData | None:
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            return SessionData.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Failed to read session {session_id}: {e}") from e

    def _write(self, data: SessionData) -> None:
        path = self._path(data.session_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(data.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write session {data.session_id}: {e}") from e

    async def _update(self, session_id: str, mutate) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read, session_id)
            if data is None:
                data = SessionData(session_id=session_id)
            mutate(data)
            await asyncio.to_thread(self._write, data)

    async def save_messages(self, session_id: str, messages: list[StoredMessage]) -> None:
        def mutate(data: SessionData) -> None:
            data.messages = list(messages)

        await self._update(session_id, mutate)

    async def load_messages(self, session_id: str) -> list[StoredMessage]:
        data = await asyncio.to_thread(self._read, session_id)
        return data.messages if data else []

    async def save_checkpoint(self, session_id: str, checkpoint: SessionCheckpoint) -> None:
        def mutate(data: SessionData) -> None:
            data.checkpoint = checkpoint

        await self._update(session_id, mutate)

    async def load_checkpoint(self, session_id: str) -> SessionCheckpoint | None:
        data = await asyncio.to_thread(self._read, session_id)
        return data.checkpoint if data else None

    async def delete_checkpoint(self, session_id: str) -> None:
        def mutate(data: SessionData) -> None:
            data.checkpoint = None

        if await self.exists(session_id):
            await self._update(session_id, mutate)

    async def save_session_data(self, data: SessionData) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, data)

    async def load_session_data(self, session_id: str) -> SessionData | None:
        return await asyncio.to_thread(self._read, session_id)

    async def exists(self, session_id: str) -> bool:
        return self._path(session_id).exists()

    async def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete session {session_id}: {e}") from e

    async def list_sessions(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(p.stem for p in self._root.glob("*.json"))
