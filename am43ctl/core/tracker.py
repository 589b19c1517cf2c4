"""Position history, stall detection and the position polling loop."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger(__name__)


class PositionTracker:
    """Keeps the most recent position samples, newest first.

    At most one polling chain is live per tracker: every ``start`` bumps a
    generation counter and older chains exit at their next tick.
    """

    def __init__(
        self,
        capacity: int = 6,
        *,
        poll_interval_s: float = 1.0,
        description: str = "",
    ) -> None:
        self.capacity = capacity
        self.poll_interval_s = poll_interval_s
        self.description = description
        self._history: deque[int] = deque(maxlen=capacity)
        self._generation = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def history(self) -> list[int]:
        return list(self._history)

    def push(self, sample: int) -> None:
        self._history.appendleft(sample)

    def reset(self) -> None:
        self._history.clear()

    def is_stalled(self) -> bool:
        LOGGER.debug("%s: stall check on %s", self.description, self.history)
        if len(self._history) < self.capacity:
            return False
        first = self._history[0]
        return all(sample == first for sample in self._history)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        poll: Callable[[], Awaitable[object]],
        should_continue: Callable[[], bool],
    ) -> asyncio.Task[None]:
        self._generation += 1
        self._task = asyncio.ensure_future(self._run(self._generation, poll, should_continue))
        self._task.add_done_callback(self._log_failure)
        return self._task

    def _log_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("%s: position tracking failed", self.description, exc_info=exc)

    def cancel(self) -> None:
        self._generation += 1
        self._task = None

    async def _run(
        self,
        generation: int,
        poll: Callable[[], Awaitable[object]],
        should_continue: Callable[[], bool],
    ) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_s)
            if generation != self._generation:
                return
            await poll()
            if generation != self._generation or not should_continue():
                LOGGER.debug("%s: position tracking finished", self.description)
                return
