"""Debounced execution of an async callback."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DebouncedTask(Generic[T]):
    """Collapses a burst of ``schedule`` calls into one callback run.

    Every call replaces the pending payload and restarts the timer; when ``delay``
    seconds pass without a new call the callback runs once with the latest payload.
    ``flush`` runs the pending payload immediately and ``cancel`` drops it.
    Callback errors are logged, never raised, since a later trigger will retry.
    """

    def __init__(self, callback: Callable[[T], Awaitable[None]], delay: float, name: str = "debounced"):
        self.callback = callback
        self.delay = delay
        self.name = name
        self._pending: T | None = None
        self._has_pending = False
        self._handle: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def is_pending(self) -> bool:
        return self._has_pending

    @property
    def pending(self) -> T | None:
        return self._pending

    def schedule(self, payload: T) -> None:
        """Store ``payload`` and (re)start the timer. Must run inside an event loop."""
        loop = asyncio.get_running_loop()
        self._pending = payload
        self._has_pending = True
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def replace(self, payload: T) -> None:
        """Swap the pending payload, keeping the current timer."""
        if self._has_pending:
            self._pending = payload

    def cancel(self) -> None:
        """Drop the pending payload without running the callback."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
        self._has_pending = False

    def _take(self) -> T | None:
        payload = self._pending
        self.cancel()
        return payload

    def _fire(self) -> None:
        self._handle = None
        if not self._has_pending:
            return
        task = asyncio.get_running_loop().create_task(self._run(self._take()))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, payload: T) -> None:
        try:
            await self.callback(payload)
        except Exception as e:
            logger.warning(f"{self.name} callback failed: {str(e)}")

    async def flush(self) -> None:
        """Run the pending payload now, then wait for every run in flight."""
        if self._has_pending:
            await self._run(self._take())
        await self.wait()

    async def wait(self) -> None:
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
