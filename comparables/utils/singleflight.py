import asyncio
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

from structlog import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Collapse concurrent calls for the same key into one in-flight task.

    Waiters await the shared task through ``asyncio.shield``: a waiter that is
    cancelled stops waiting but the task keeps running for everybody else.
    The key is released as soon as the task settles, so the next call after a
    success or a failure starts fresh.
    """

    def __init__(self):
        self._pending: Dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._pending

    async def do(self, key: Hashable, func: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(func())
            self._pending[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("single_flight_joined", key=str(key))
        return await asyncio.shield(task)

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        # Retrieve the outcome so an error nobody awaited is not reported as lost
        if not task.cancelled():
            task.exception()
