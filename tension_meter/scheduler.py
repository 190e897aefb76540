"""
Cancellable periodic task on a monotonic clock.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

# Called with the monotonic time of the tick; returns False to stop the task
TickCallback = Callable[[float], bool]


class CancellationToken:
    """One-shot cancellation flag that can also be waited on."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)


class PeriodicTask:
    """
    Runs a callback every ``interval`` seconds on a worker thread.

    The first tick runs immediately. The next one is due ``interval`` seconds
    after the previous one started. The token is checked at the top of every
    iteration, so ``cancel`` takes effect between ticks. The task also ends
    when the callback returns False or raises; the exception is kept in
    ``error`` and handed to ``on_error`` if one is given.
    """

    def __init__(
        self,
        callback: TickCallback,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        name: str = "periodic-task",
        on_error: Callable[[BaseException], None] | None = None,
    ):
        self.callback = callback
        self.on_error = on_error
        self.interval = interval
        self.clock = clock
        self.name = name
        self.error: BaseException | None = None

        self._token = CancellationToken()
        self._thread: threading.Thread | None = None

    def start(self):
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self, timeout: float | None = 2.0):
        """Cancel the task and wait for the worker to finish."""
        self._token.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def join(self, timeout: float | None = None):
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def _run(self):
        deadline = self.clock()
        while not self._token.cancelled:
            remaining = deadline - self.clock()
            if remaining > 0:
                self._token.wait(remaining)
                continue

            now = self.clock()
            try:
                keep_going = self.callback(now)
            except Exception as e:
                self.error = e
                logger.exception("%s: tick failed, stopping", self.name)
                if self.on_error is not None:
                    self.on_error(e)
                return
            if not keep_going:
                logger.debug("%s: finished", self.name)
                return
            deadline = now + self.interval
