"""
Debounce engine. Coalesces bursts of calls into one trailing call.

Every ``trigger()`` cancels the pending timer and starts a new one, so
only the last call in a burst runs, ``delay`` seconds after it.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def _daemon_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class Debouncer:
    """Trailing-edge debounce around ``action``.

    ``timer_factory`` builds an unstarted timer object with ``start()`` and
    ``cancel()``; tests pass a manual one to fire timers deterministically.
    """

    def __init__(self, action: Callable[[], None], delay: float,
                 timer_factory: Optional[TimerFactory] = None):
        self._action = action
        self.delay = delay
        self._timer_factory = timer_factory or _daemon_timer
        self._lock = threading.Lock()
        self._timer = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            self._timer.start()

    def _fire(self, generation: int):
        with self._lock:
            # A timer cancelled after it started firing must not run.
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self._run()

    def _run(self):
        try:
            self._action()
        except Exception:
            logger.exception("Debounced action failed")

    def flush(self) -> bool:
        """Run a pending action now. Returns whether one was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
        self._run()
        return True

    def cancel(self) -> bool:
        """Drop a pending action without running it."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
            return True
