"""Event scheduling for the cooking session.

Everything in a session (timer ticks, listener restarts, delayed narration)
runs on one scheduler. Worker threads owned by speech engines never touch
session state; they hand callbacks back with ``call_soon_threadsafe``.
"""
import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Interface the session components use to defer work."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        ...

    def call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        ...

    def time(self) -> float:
        ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(delay, 0.0), self._guard(callback))

    def call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        if self._loop.is_closed():
            logger.warning("Dropping callback, event loop is closed")
            return
        self._loop.call_soon_threadsafe(self._guard(callback))

    def time(self) -> float:
        return self._loop.time()

    @staticmethod
    def _guard(callback: Callable[[], None]) -> Callable[[], None]:
        def run():
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed")
        return run
