"""Persistent countdown timer that locks the device when the budget runs out."""

import logging
import time
from typing import Callable, Protocol

from screenlock_shared import TimerPhase, TimerSnapshot

from .errors import InvalidTransition, MalformedPersistedState
from .store import TIMER_KEY, KeyValueStore, load_model, save_model

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class TickHandle(Protocol):
    def cancel(self) -> None: ...


# e.g. asyncio's loop.call_later
Schedule = Callable[[float, Callable[[], None]], TickHandle]


def seconds_since(snapshot: TimerSnapshot, now: float) -> int:
    """Wall-clock seconds since the snapshot was written."""
    # A negative gap means the clock moved backwards; count it as zero.
    return max(0, int(now - snapshot.started_at / 1000))


def remaining_after_restart(snapshot: TimerSnapshot, now: float) -> int:
    """Budget left for a running snapshot once the time spent closed is charged."""
    return max(0, snapshot.time_left - seconds_since(snapshot, now))


class TimerAuthority:
    """Owns the countdown, its transitions and the lock trigger.

    ``on_update(time_left, active)`` is called on every observable change,
    with ``active`` true only while running. ``on_lock(True)`` fires when the
    budget runs out and ``on_lock(False)`` when an active timer is stopped.

    With a ``schedule`` callable the authority arms its own one-second ticks
    and holds at most one outstanding handle, cancelled on stop, reset,
    pause, expiry and close. Without one, the owner calls ``tick()``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        on_update: Callable[[int, bool], None] | None = None,
        on_lock: Callable[[bool], None] | None = None,
        schedule: Schedule | None = None,
        restore_paused: bool = True,
    ):
        self._store = store
        self._clock = clock
        self._on_update = on_update
        self._on_lock = on_lock
        self._schedule = schedule
        self._restore_paused = restore_paused
        self._duration = 0
        self._time_left = 0
        self._is_active = False
        self._is_paused = False
        self._handle: TickHandle | None = None
        self._rehydrate()

    @property
    def time_left(self) -> int:
        return self._time_left

    @property
    def duration(self) -> int:
        return self._duration

    @property
    def is_active(self) -> bool:
        return self._is_active

    @property
    def is_paused(self) -> bool:
        return self._is_paused

    @property
    def phase(self) -> TimerPhase:
        if not self._is_active:
            return TimerPhase.IDLE
        if self._is_paused:
            return TimerPhase.PAUSED
        return TimerPhase.RUNNING

    def start(self, minutes: int) -> None:
        if minutes <= 0:
            raise ValueError(f"Timer minutes must be positive, got {minutes}")
        if self._is_active:
            raise InvalidTransition(f"Cannot start a timer while {self.phase}")

        self._duration = minutes * 60
        self._time_left = self._duration
        self._is_active = True
        self._is_paused = False
        self._persist()
        self._arm()
        logger.info("Timer started for %d minutes", minutes)
        self._notify()

    def tick(self) -> None:
        """Count down one second. No-op unless running."""
        if self.phase is not TimerPhase.RUNNING:
            logger.debug("Ignoring tick while %s", self.phase)
            return

        self._time_left -= 1
        if self._time_left <= 0:
            logger.warning("Screen time budget used up, locking device")
            self._expire()
            return

        self._persist()
        self._notify()

    def pause(self) -> None:
        if not self._is_active or self._is_paused:
            return
        self._is_paused = True
        self._disarm()
        self._persist()
        logger.info("Timer paused with %d seconds left", self._time_left)
        self._notify()

    def resume(self) -> None:
        if not self._is_active or not self._is_paused:
            return
        self._is_paused = False
        self._persist()
        self._arm()
        logger.info("Timer resumed with %d seconds left", self._time_left)
        self._notify()

    def stop(self) -> None:
        self._clear("stopped")

    def reset(self) -> None:
        """Stop and discard any paused or partial state."""
        self._clear("reset")

    def close(self) -> None:
        """Cancel the outstanding tick on teardown. State is kept."""
        self._disarm()

    def _clear(self, action: str) -> None:
        was_active = self._is_active
        self._disarm()
        self._time_left = 0
        self._is_active = False
        self._is_paused = False
        self._store.delete(TIMER_KEY)
        if not was_active:
            return

        logger.info("Timer %s", action)
        self._notify()
        if self._on_lock:
            self._on_lock(False)

    def _expire(self) -> None:
        # Expired is transient: the lock fires and the timer is idle again.
        self._disarm()
        self._time_left = 0
        self._is_active = False
        self._is_paused = False
        self._store.delete(TIMER_KEY)
        self._notify()
        if self._on_lock:
            self._on_lock(True)

    def _arm(self) -> None:
        if self._schedule is None:
            return
        self._disarm()

        handle: TickHandle | None = None

        def on_tick() -> None:
            # Late callback from a cancelled handle
            if handle is None or self._handle is not handle:
                return
            self._handle = None
            self.tick()
            if self.phase is TimerPhase.RUNNING and self._handle is None:
                self._arm()

        handle = self._schedule(TICK_SECONDS, on_tick)
        self._handle = handle

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _persist(self) -> None:
        save_model(
            self._store,
            TIMER_KEY,
            TimerSnapshot(
                time_left=self._time_left,
                is_active=self._is_active,
                is_paused=self._is_paused,
                started_at=int(self._clock() * 1000),
                duration=self._duration,
            ),
        )

    def _notify(self) -> None:
        if self._on_update:
            self._on_update(self._time_left, self._is_active and not self._is_paused)

    def _rehydrate(self) -> None:
        """Resume from the last snapshot, subtracting time spent not running."""
        try:
            snapshot = load_model(self._store, TIMER_KEY, TimerSnapshot)
        except MalformedPersistedState:
            logger.warning("Discarding corrupt timer snapshot", exc_info=True)
            self._store.delete(TIMER_KEY)
            return

        if snapshot is None:
            return

        if not snapshot.is_active:
            logger.info("Discarding inactive timer snapshot")
            self._store.delete(TIMER_KEY)
            return

        if snapshot.is_paused:
            if not self._restore_paused:
                logger.info("Discarding paused timer snapshot")
                self._store.delete(TIMER_KEY)
                return
            self._duration = snapshot.duration
            self._time_left = snapshot.time_left
            self._is_active = True
            self._is_paused = True
            logger.info("Restored paused timer with %d seconds left", self._time_left)
            self._notify()
            return

        now = self._clock()
        elapsed = seconds_since(snapshot, now)
        remaining = remaining_after_restart(snapshot, now)
        if remaining <= 0:
            logger.warning(
                "Screen time budget ran out %d seconds ago while not running, locking device",
                elapsed - snapshot.time_left,
            )
            self._expire()
            return

        self._duration = snapshot.duration
        self._time_left = remaining
        self._is_active = True
        self._is_paused = False
        self._persist()
        self._arm()
        logger.info(
            "Resumed timer with %d seconds left (%d seconds elapsed since last snapshot)",
            remaining,
            elapsed,
        )
        self._notify()
