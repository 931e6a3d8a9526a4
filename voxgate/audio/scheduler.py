"""Tick scheduling for the sampling loop and encoder flushes.

Every periodic callback and every ``call()`` of one scheduler runs on a single
execution context, so session state never needs its own locking. Ticks do not
overlap; a tick that fires late skips the periods it missed instead of
running them back to back.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, Tuple

LOGGER = logging.getLogger("voxgate.scheduler")


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class Ticker:
    """Handle for a periodic callback; ``cancel()`` drops pending ticks."""

    def __init__(self, interval_ms: float, callback: Callable[[], None], name: str | None = None) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.interval_ms = float(interval_ms)
        self.callback = callback
        self.name = name or getattr(callback, "__name__", "ticker")
        self.next_due = 0.0
        self.runs = 0
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def fire(self) -> None:
        self.runs += 1
        try:
            self.callback()
        except Exception:
            LOGGER.exception("Tick callback %s failed", self.name)

    def advance_from(self, due: float, now: float) -> None:
        next_due = due + self.interval_ms
        if next_due <= now:
            missed = int((now - next_due) // self.interval_ms) + 1
            next_due += missed * self.interval_ms
        self.next_due = next_due


class _Call:
    def __init__(self, fn: Callable[..., Any], args: Tuple[Any, ...], future: Future) -> None:
        self.fn = fn
        self.args = args
        self.future = future

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.fn(*self.args)
        except BaseException as exc:  # delivered to the waiting caller
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class ThreadScheduler:
    """Runs tickers and submitted calls on one daemon thread."""

    def __init__(self, name: str = "voxgate-scheduler") -> None:
        self.name = name
        self._cond = threading.Condition()
        self._queue: List[Tuple[float, int, Any]] = []
        self._counter = itertools.count()
        self._thread: threading.Thread | None = None
        self._closed = False

    def now(self) -> float:
        return monotonic_ms()

    def in_loop(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def every(self, interval_ms: float, callback: Callable[[], None], *, name: str | None = None) -> Ticker:
        ticker = Ticker(interval_ms, callback, name)
        ticker.next_due = self.now() + ticker.interval_ms
        self._push(ticker.next_due, ticker)
        return ticker

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run ``fn`` on the loop thread and wait for its result."""
        if self.in_loop():
            return fn(*args)
        future: Future = Future()
        self._push(self.now(), _Call(fn, args, future))
        return future.result()

    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def shutdown(self, timeout: float = 2.0) -> None:
        with self._cond:
            self._closed = True
            pending = [item for _, _, item in self._queue]
            self._queue.clear()
            self._cond.notify_all()
        for item in pending:
            if isinstance(item, _Call):
                item.future.cancel()
        thread = self._thread
        if thread and thread.is_alive() and not self.in_loop():
            thread.join(timeout=timeout)

    def _push(self, due: float, item: Any) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError(f"Scheduler {self.name} is shut down")
            if any(isinstance(entry[2], Ticker) and entry[2].cancelled for entry in self._queue):
                self._queue = [
                    entry for entry in self._queue if not (isinstance(entry[2], Ticker) and entry[2].cancelled)
                ]
                heapq.heapify(self._queue)
            heapq.heappush(self._queue, (due, next(self._counter), item))
            self._ensure_thread()
            self._cond.notify_all()

    def _ensure_thread(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                item = None
                while not self._closed:
                    if self._queue:
                        due = self._queue[0][0]
                        wait = (due - self.now()) / 1000.0
                        if wait <= 0:
                            due, _, item = heapq.heappop(self._queue)
                            break
                        self._cond.wait(timeout=wait)
                    else:
                        self._cond.wait()
                if self._closed:
                    return
            if isinstance(item, _Call):
                item.run()
                continue
            if item.cancelled:
                continue
            item.fire()
            if item.cancelled:
                continue
            item.advance_from(due, self.now())
            with self._cond:
                if self._closed:
                    return
                heapq.heappush(self._queue, (item.next_due, next(self._counter), item))


class ManualScheduler:
    """Deterministic scheduler whose clock only moves through :meth:`advance`."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = float(start_ms)
        self._tickers: List[Tuple[int, Ticker]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self.now_ms

    def in_loop(self) -> bool:
        return True

    def every(self, interval_ms: float, callback: Callable[[], None], *, name: str | None = None) -> Ticker:
        ticker = Ticker(interval_ms, callback, name)
        ticker.next_due = self.now_ms + ticker.interval_ms
        self._tickers.append((next(self._counter), ticker))
        return ticker

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        return fn(*args)

    def advance(self, duration_ms: float) -> None:
        target = self.now_ms + duration_ms
        while True:
            ticker = self._next_due(target)
            if ticker is None:
                break
            due = ticker.next_due
            self.now_ms = due
            ticker.fire()
            ticker.advance_from(due, self.now_ms)
        self.now_ms = target
        self._tickers = [(order, t) for order, t in self._tickers if not t.cancelled]

    def active_tickers(self) -> List[Ticker]:
        return [t for _, t in self._tickers if not t.cancelled]

    def shutdown(self, timeout: float = 0.0) -> None:
        for _, ticker in self._tickers:
            ticker.cancel()
        self._tickers = []

    def _next_due(self, target: float) -> Optional[Ticker]:
        due = [
            (t.next_due, order, t)
            for order, t in self._tickers
            if not t.cancelled and t.next_due <= target
        ]
        if not due:
            return None
        return min(due, key=lambda entry: (entry[0], entry[1]))[2]


__all__ = ["ManualScheduler", "ThreadScheduler", "Ticker", "monotonic_ms"]
