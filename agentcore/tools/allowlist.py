"""Durable "always allow" decisions, keyed by command root or path."""

from __future__ import annotations


class Allowlist:
    def __init__(self, entries: list[str] | None = None) -> None:
        self._entries: set[str] = set(entries or [])

    def has(self, key: str) -> bool:
        return key in self._entries

    def add(self, key: str) -> None:
        self._entries.add(key)

    def remove(self, key: str) -> bool:
        if key in self._entries:
            self._entries.discard(key)
            return True
        return False

    def clear(self) -> None:
        self._entries.clear()

    def get_all(self) -> list[str]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
