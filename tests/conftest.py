"""
Shared fixtures.
"""

import pytest

from block_grader_core.execution_engine import TestCase
from block_grader_core.storage import MemoryStore


class ManualTimer:
    """Stands in for threading.Timer; fires only when told to."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.callback()


class ManualTimers:
    def __init__(self):
        self.created = []

    def __call__(self, delay, callback):
        timer = ManualTimer(delay, callback)
        self.created.append(timer)
        return timer

    @property
    def live(self):
        return [t for t in self.created if t.started and not t.cancelled]

    def fire_all(self):
        for timer in list(self.live):
            timer.fire()


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def doubling_cases():
    return [
        TestCase(id=1, input=[5, 3], expected_output=16, is_sample=True),
        TestCase(id=2, input=[4, 4], expected_output=16, is_sample=False),
    ]
