"""Channel-style confirmation between the scheduler and a UI task.

The scheduler awaits ``broker.confirm`` (its confirmation callback); the
request is put on a queue and the scheduler suspends on a future until a UI
task calls ``respond``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from agentcore.tools.types import ConfirmDetails, ConfirmOutcome

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationRequest:
    call_id: str
    tool_name: str
    details: ConfirmDetails
    future: asyncio.Future[ConfirmOutcome]


class ConfirmationBroker:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[ConfirmationRequest] = asyncio.Queue()
        self._pending: dict[str, ConfirmationRequest] = {}

    async def confirm(self, call_id: str, tool_name: str, details: ConfirmDetails) -> ConfirmOutcome:
        future: asyncio.Future[ConfirmOutcome] = asyncio.get_running_loop().create_future()
        request = ConfirmationRequest(call_id, tool_name, details, future)
        self._pending[call_id] = request
        await self._queue.put(request)
        try:
            return await future
        finally:
            self._pending.pop(call_id, None)

    async def next_request(self) -> ConfirmationRequest:
        return await self._queue.get()

    async def requests(self) -> AsyncIterator[ConfirmationRequest]:
        while True:
            yield await self._queue.get()

    def respond(self, call_id: str, outcome: ConfirmOutcome) -> bool:
        """Resolve a pending request. Returns False if it no longer waits."""
        request = self._pending.get(call_id)
        if request is None or request.future.done():
            logger.debug("No pending confirmation for %s", call_id)
            return False
        request.future.set_result(outcome)
        return True

    def cancel_all(self) -> None:
        for request in list(self._pending.values()):
            if not request.future.done():
                request.future.set_result(ConfirmOutcome.CANCEL)

    @property
    def pending(self) -> list[str]:
        return list(self._pending)
