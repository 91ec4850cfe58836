import logging
from typing import Callable, Optional

from services.scheduler import Cancellable, Scheduler

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class CountdownTimer:
    """One-second countdown for a cooking step.

    ``on_tick(remaining)`` fires once per second and ``on_complete()`` fires
    exactly once when the count reaches zero. Nothing fires after ``cancel()``.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Optional[Callable[[int], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self.scheduler = scheduler
        self.on_tick = on_tick
        self.on_complete = on_complete
        self.remaining = 0
        self._handle: Optional[Cancellable] = None
        self._run_id = 0

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self, seconds: int) -> None:
        """Start counting down from ``seconds``, replacing any current run."""
        self.cancel()
        self._run_id += 1
        self.remaining = max(int(seconds), 0)
        logger.info(f"Timer started for {self.remaining}s")
        delay = TICK_SECONDS if self.remaining > 0 else 0.0
        self._schedule(self._run_id, delay)

    def cancel(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        self._run_id += 1
        logger.info(f"Timer cancelled with {self.remaining}s remaining")

    def _schedule(self, run_id: int, delay: float) -> None:
        self._handle = self.scheduler.call_later(delay, lambda: self._tick(run_id))

    def _tick(self, run_id: int) -> None:
        if run_id != self._run_id or self._handle is None:
            return
        counted = self.remaining > 0
        self.remaining = max(self.remaining - 1, 0)
        if self.remaining > 0:
            logger.debug(f"Timer tick, {self.remaining}s remaining")
            self._schedule(run_id, TICK_SECONDS)
            if self.on_tick:
                self.on_tick(self.remaining)
            return

        self._handle = None
        self._run_id += 1
        logger.info("Timer complete")
        if counted and self.on_tick:
            self.on_tick(0)
        if self.on_complete:
            self.on_complete()
