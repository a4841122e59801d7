"""Shared fixtures for the device client test suite."""

import os
from collections.abc import Callable

import pytest

# Headless test runs have no tray to draw on.
os.environ.setdefault("PYSTRAY_BACKEND", "dummy")

from screenlock_device.session import SessionAuthority  # noqa: E402
from screenlock_device.store import MemoryStore  # noqa: E402

START = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock, in seconds."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHandle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Records scheduled ticks instead of running an event loop."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def fire_next(self) -> None:
        handle = self.pending[0]
        self.handles.remove(handle)
        handle.callback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def session(store: MemoryStore, clock: FakeClock) -> SessionAuthority:
    return SessionAuthority(store, clock=clock)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()
