from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TaskHandle:
    """Handle to a delayed callback. ``cancel()`` is idempotent."""
    due: float
    callback: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    label: str = ""
    cancelled: bool = False
    done: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)


@dataclass
class Scheduler:
    """Delayed-task queue driven by an explicit clock.

    Works like ``arcade.schedule_once`` but time only moves when ``advance``
    is called, so tests and headless runs are deterministic and a reset can
    cancel every pending transition at once.
    """
    now: float = 0.0
    _queue: List[Tuple[float, int, TaskHandle]] = field(default_factory=list)
    _seq: Any = field(default_factory=itertools.count)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any, label: str = "") -> TaskHandle:
        handle = TaskHandle(due=self.now + max(0.0, float(delay)), callback=callback, args=args, label=label)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    def advance(self, dt: float) -> int:
        """Move the clock forward by ``dt`` seconds and run every task now due.

        Each callback runs with ``now`` set to its own due time, so a task it
        schedules is timed from that point and also runs if it falls due
        within the same window. Returns the number of callbacks run.
        """
        target = self.now + max(0.0, float(dt))
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = max(self.now, handle.due)
            handle.done = True
            logger.debug("Running scheduled task %s at t=%.3f", handle.label or handle.callback, self.now)
            handle.callback(*handle.args)
            ran += 1
        self.now = target
        return ran

    def cancel_all(self) -> int:
        n = 0
        for _, _, handle in self._queue:
            if handle.pending:
                handle.cancel()
                n += 1
        self._queue.clear()
        return n

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if h.pending)
