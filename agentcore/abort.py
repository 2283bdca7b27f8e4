"""Cooperative cancellation signal threaded through async operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from agentcore.errors import AbortedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AbortSignal:
    """One-shot abort flag backed by an asyncio.Event.

    Listeners run synchronously inside abort(), in registration order.
    A listener that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._listeners: list[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str = "aborted") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Abort listener failed")
        self._listeners.clear()

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a callback fired on abort. Returns a remover.

        If the signal is already aborted the listener runs immediately.
        """
        if self.aborted:
            listener()
            return lambda: None
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def wait(self) -> None:
        await self._event.wait()

    def throw_if_aborted(self) -> None:
        if self.aborted:
            raise AbortedError(self._reason or "aborted")

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the signal fires first.

        On abort the pending work is cancelled and AbortedError is raised.
        """
        self.throw_if_aborted()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise
        if work in done:
            waiter.cancel()
            return work.result()
        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug("Work raised after abort", exc_info=True)
        raise AbortedError(self._reason or "aborted")
