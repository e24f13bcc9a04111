from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Set, Tuple

Callback = Callable[[], None]


class Scheduler:
    """Delayed-callback source used by the simulator.

    Implementations only need two operations: queue a callback after a delay
    in milliseconds and cancel a previously returned handle. Cancelling a
    handle that already fired must be harmless.
    """

    def call_later(self, delay_ms: int, callback: Callback) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError


class ManualScheduler(Scheduler):
    """Virtual clock. Nothing runs until the owner advances time."""

    def __init__(self) -> None:
        self._now = 0
        self._queue: List[Tuple[int, int, Callback]] = []
        self._cancelled: Set[int] = set()
        self._ids = itertools.count(1)

    @property
    def now(self) -> int:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for _, handle, _ in self._queue if handle not in self._cancelled)

    def call_later(self, delay_ms: int, callback: Callback) -> int:
        handle = next(self._ids)
        heapq.heappush(self._queue, (self._now + max(0, int(delay_ms)), handle, callback))
        return handle

    def cancel(self, handle: Any) -> None:
        if any(entry[1] == handle for entry in self._queue):
            self._cancelled.add(handle)

    def next_delay(self) -> Optional[int]:
        self._drop_cancelled()
        if not self._queue:
            return None
        return self._queue[0][0] - self._now

    def run_next(self) -> bool:
        """Jump to the next due callback and run it. False when idle."""
        self._drop_cancelled()
        if not self._queue:
            return False
        due, _, callback = heapq.heappop(self._queue)
        self._now = max(self._now, due)
        callback()
        return True

    def advance(self, delay_ms: int) -> int:
        """Move the clock forward, running whatever falls due. Returns count run."""
        target = self._now + delay_ms
        ran = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > target:
                break
            due, _, callback = heapq.heappop(self._queue)
            self._now = due
            callback()
            ran += 1
        self._now = target
        return ran

    def run_all(self, limit: int = 10_000) -> int:
        ran = 0
        while ran < limit and self.run_next():
            ran += 1
        return ran

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0][1] in self._cancelled:
            _, handle, _ = heapq.heappop(self._queue)
            self._cancelled.discard(handle)


class TkScheduler(Scheduler):
    """Adapter over a Tk widget's `after` / `after_cancel` pair."""

    def __init__(self, widget: Any) -> None:
        self._widget = widget

    def call_later(self, delay_ms: int, callback: Callback) -> Any:
        return self._widget.after(max(0, int(delay_ms)), callback)

    def cancel(self, handle: Any) -> None:
        self._widget.after_cancel(handle)


class AsyncioScheduler(Scheduler):
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: Callback) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0, int(delay_ms)) / 1000.0, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
