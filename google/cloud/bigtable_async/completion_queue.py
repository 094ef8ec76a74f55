# Copyright 2024 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
from __future__ import annotations

import collections
import concurrent.futures
import enum
import heapq
import itertools
import logging
import threading
import time

from typing import Any, Callable

from google.cloud.bigtable_async.exceptions import CompletionQueueShutdown

_LOGGER = logging.getLogger(__name__)


class QueueState(enum.Enum):
    """Lifecycle of a CompletionQueue"""

    # accepting and executing work
    OPEN = "OPEN"
    # shutdown() was called; queued work still runs, new work is rejected
    DRAINING = "DRAINING"
    # shut down, drained, and no thread is inside run()
    STOPPED = "STOPPED"


class _WorkItem:
    """A callable scheduled on the queue, and the future it resolves"""

    def __init__(self, future: concurrent.futures.Future, fn: Callable, args, kwargs):
        self.future = future
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self):
        try:
            result = self.fn(*self.args, **self.kwargs)
        except Exception as exc:
            _LOGGER.warning("Queued operation %r raised %r", self.fn, exc)
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class _TimerItem:
    """A timer that became due. Resolves its future with the deadline"""

    def __init__(self, future: concurrent.futures.Future, deadline: float):
        self.future = future
        self.deadline = deadline

    def run(self):
        if self.future.set_running_or_notify_cancel():
            self.future.set_result(self.deadline)


class CompletionQueue:
    """
    A thread-safe work queue that executes asynchronous operations and
    resolves their futures.

    The queue owns no threads. One or more threads call ``run()``, which
    blocks executing queued work until ``shutdown()`` is called and the
    queue has drained:

        cq = CompletionQueue()
        worker = threading.Thread(target=cq.run)
        worker.start()
        future = cq.run_async(some_function, arg)
        result = future.result()
        cq.shutdown()
        worker.join()

    Futures of work submitted to a queue that nobody runs never resolve.
    Exceptions raised by queued work are captured on its future and never
    escape ``run()``. Completion order across independent operations is
    not guaranteed to match submission order when several threads run the
    queue.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._ready: collections.deque[_WorkItem | _TimerItem] = collections.deque()
        # heap of (deadline, sequence, future)
        self._timers: list[tuple[float, int, concurrent.futures.Future]] = []
        self._sequence = itertools.count()
        self._state = QueueState.OPEN
        self._active_runners = 0

    @property
    def state(self) -> QueueState:
        with self._condition:
            return self._state

    @property
    def pending_operations(self) -> int:
        """Number of queued callables and pending timers"""
        with self._condition:
            return len(self._ready) + len(self._timers)

    def run(self) -> None:
        """
        Execute queued work until the queue is shut down and drained

        Blocks the calling thread. Safe to call from several threads at once.
        """
        with self._condition:
            self._active_runners += 1
        _LOGGER.debug("CompletionQueue runner started")
        try:
            while True:
                item = self._next_item()
                if item is None:
                    return
                item.run()
        finally:
            with self._condition:
                self._active_runners -= 1
                self._maybe_stop()
                self._condition.notify_all()
            _LOGGER.debug("CompletionQueue runner exited")

    def shutdown(self) -> None:
        """
        Stop accepting new work, and let every run() call return once the
        already-queued work has executed. Pending timers are cancelled.

        Calling shutdown more than once has no additional effect.
        """
        with self._condition:
            if self._state is not QueueState.OPEN:
                return
            self._state = QueueState.DRAINING
            timers, self._timers = self._timers, []
            self._maybe_stop()
            self._condition.notify_all()
        for _, _, future in timers:
            future.cancel()
        _LOGGER.debug(
            "CompletionQueue shut down, %d pending timers cancelled", len(timers)
        )

    def run_async(self, fn: Callable[..., Any], *args, **kwargs) -> concurrent.futures.Future:
        """
        Schedule fn(*args, **kwargs) to run on a thread inside run()

        Returns:
          - a Future resolved with fn's return value, or with the exception
              it raised. If the queue was already shut down, the future
              fails with CompletionQueueShutdown and fn is never called.

        Once accepted, the operation always runs: the returned future is
        already running, so cancel() on it returns False.
        """
        future: concurrent.futures.Future = concurrent.futures.Future()
        with self._condition:
            if self._state is QueueState.OPEN:
                future.set_running_or_notify_cancel()
                self._ready.append(_WorkItem(future, fn, args, kwargs))
                self._condition.notify()
                return future
        _LOGGER.debug("Rejected operation %r submitted after shutdown", fn)
        future.set_exception(CompletionQueueShutdown())
        return future

    def make_deadline_timer(self, deadline: float) -> concurrent.futures.Future:
        """
        Create a timer that expires at ``deadline``, a time.monotonic() value

        Returns:
          - a Future resolved with the deadline once a run() thread observes
              the expiry. The future is cancelled if the queue shuts down
              before the timer expires.
        """
        future: concurrent.futures.Future = concurrent.futures.Future()
        with self._condition:
            if self._state is QueueState.OPEN:
                heapq.heappush(self._timers, (deadline, next(self._sequence), future))
                self._condition.notify()
                return future
        future.cancel()
        return future

    def make_relative_timer(self, delay: float) -> concurrent.futures.Future:
        """
        Create a timer that expires ``delay`` seconds from now
        """
        if delay < 0:
            raise ValueError("delay must be non-negative")
        return self.make_deadline_timer(time.monotonic() + delay)

    def _next_item(self) -> _WorkItem | _TimerItem | None:
        """
        Block until there is work to run. Returns None once the queue is
        shut down and empty.
        """
        with self._condition:
            while True:
                now = time.monotonic()
                while self._timers and self._timers[0][0] <= now:
                    deadline, _, future = heapq.heappop(self._timers)
                    self._ready.append(_TimerItem(future, deadline))
                if self._ready:
                    return self._ready.popleft()
                if self._state is not QueueState.OPEN:
                    return None
                timeout = None
                if self._timers:
                    timeout = max(0.0, self._timers[0][0] - now)
                self._condition.wait(timeout)

    def _maybe_stop(self):
        # caller must hold self._condition
        if (
            self._state is QueueState.DRAINING
            and self._active_runners == 0
            and not self._ready
        ):
            self._state = QueueState.STOPPED

    def __repr__(self):
        return f"CompletionQueue(state={self._state.name}, runners={self._active_runners})"
