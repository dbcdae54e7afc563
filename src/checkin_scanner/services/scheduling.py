"""Cancellable timers and background work for the scanner's event loop.

Everything in the scanner runs on one thread (the Tk main loop in the
desktop app). Timers and blocking work go through a ``Scheduler`` so that
callbacks always land back on that thread, and so tests can drive time by
hand with ``ManualScheduler``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Any, Callable, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScheduledTask(Protocol):
    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask: ...

    def call_soon(self, callback: Callable[[], None]) -> ScheduledTask: ...

    def submit(
        self,
        work: Callable[[], T],
        on_result: Callable[[T], None],
        on_error: Callable[[BaseException], None],
    ) -> None: ...


# ----------------------------------------------------------------------
# Tk main loop
# ----------------------------------------------------------------------
class _TkTask:
    def __init__(self, widget: Any) -> None:
        self._widget = widget
        self._job: Optional[str] = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._job is None:
            return
        try:
            self._widget.after_cancel(self._job)
        except Exception:
            # The widget may already be destroyed; the job dies with it.
            pass
        finally:
            self._job = None


class TkScheduler:
    """Scheduler backed by ``widget.after`` with worker threads for blocking calls."""

    def __init__(self, widget: Any) -> None:
        self._widget = widget

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledTask:
        task = _TkTask(self._widget)

        def _fire() -> None:
            task._job = None
            if not task.active:
                return
            task._active = False
            callback()

        task._job = self._widget.after(max(0, int(delay_ms)), _fire)
        return task

    def call_soon(self, callback: Callable[[], None]) -> ScheduledTask:
        return self.call_later(0, callback)

    def submit(
        self,
        work: Callable[[], T],
        on_result: Callable[[T], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        def _runner() -> None:
            try:
                value = work()
            except Exception as exc:
                error = exc
                self._post(lambda: on_error(error))
                return
            self._post(lambda: on_result(value))

        threading.Thread(target=_runner, daemon=True).start()

    def _post(self, callback: Callable[[], None]) -> None:
        try:
            self._widget.after(0, callback)
        except RuntimeError:
            # Main loop has gone away; nothing left to deliver to.
            logger.debug("Dropped scheduler callback after main loop shutdown")


# ----------------------------------------------------------------------
# Virtual time
# ----------------------------------------------------------------------
class ManualTask:
    def __init__(self, due_ms: int, callback: Callable[[], None]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class ManualScheduler:
    """Deterministic scheduler whose clock only moves when ``advance`` is called.

    Background work runs inline when submitted unless ``defer_work`` is set,
    in which case it waits for ``run_work``. Results are always delivered as
    zero-delay timers, never re-entrantly.
    """

    def __init__(self, *, defer_work: bool = False) -> None:
        self.now_ms = 0
        self.defer_work = defer_work
        self._queue: list[tuple[int, int, ManualTask]] = []
        self._sequence = itertools.count()
        self._pending_work: list[Callable[[], None]] = []

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(self.now_ms + max(0, int(delay_ms)), callback)
        heapq.heappush(self._queue, (task.due_ms, next(self._sequence), task))
        return task

    def call_soon(self, callback: Callable[[], None]) -> ManualTask:
        return self.call_later(0, callback)

    def submit(
        self,
        work: Callable[[], T],
        on_result: Callable[[T], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        def _run() -> None:
            try:
                value = work()
            except Exception as exc:
                error = exc
                self.call_soon(lambda: on_error(error))
                return
            self.call_soon(lambda: on_result(value))

        if self.defer_work:
            self._pending_work.append(_run)
        else:
            _run()

    @property
    def pending_work(self) -> int:
        return len(self._pending_work)

    def run_work(self) -> None:
        """Run deferred background work; results still need ``advance``."""

        pending, self._pending_work = self._pending_work, []
        for job in pending:
            job()

    def advance(self, ms: int = 0) -> None:
        target = self.now_ms + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            self.now_ms = max(self.now_ms, due)
            if not task.active:
                continue
            task._active = False
            task.callback()
        self.now_ms = target

    def pending_timers(self) -> int:
        return sum(1 for _, _, task in self._queue if task.active)
