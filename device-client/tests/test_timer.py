"""Tests for the countdown timer state machine."""

import json

import pytest
from conftest import FakeClock, FakeScheduler

from screenlock_device.errors import InvalidTransition
from screenlock_device.store import MemoryStore
from screenlock_device.timer import TimerAuthority
from screenlock_shared import TimerPhase


class Recorder:
    def __init__(self) -> None:
        self.updates: list[tuple[int, bool]] = []
        self.locks: list[bool] = []

    def on_update(self, time_left: int, active: bool) -> None:
        self.updates.append((time_left, active))

    def on_lock(self, locked: bool) -> None:
        self.locks.append(locked)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


def make_timer(
    store: MemoryStore,
    clock: FakeClock,
    recorder: Recorder,
    **kwargs: object,
) -> TimerAuthority:
    return TimerAuthority(
        store,
        clock=clock,
        on_update=recorder.on_update,
        on_lock=recorder.on_lock,
        **kwargs,  # type: ignore[arg-type]
    )


def write_snapshot(
    store: MemoryStore,
    started_at: float,
    time_left: int,
    is_paused: bool = False,
    duration: int = 600,
) -> None:
    store.records["timer"] = json.dumps(
        {
            "timeLeft": time_left,
            "isActive": True,
            "isPaused": is_paused,
            "startedAt": int(started_at * 1000),
            "duration": duration,
        }
    )


class TestCountdown:
    def test_one_minute_runs_out_after_sixty_ticks(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(1)
        assert timer.phase is TimerPhase.RUNNING
        assert timer.time_left == 60

        for _ in range(60):
            clock.advance(1)
            timer.tick()

        assert timer.phase is TimerPhase.IDLE
        assert timer.time_left == 0
        assert recorder.locks == [True]
        assert recorder.updates[-1] == (0, False)
        assert "timer" not in store.records

    def test_tick_updates_and_persists(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(2)
        clock.advance(1)
        timer.tick()

        assert recorder.updates == [(120, True), (119, True)]
        snapshot = json.loads(store.records["timer"])
        assert snapshot == {
            "timeLeft": 119,
            "isActive": True,
            "isPaused": False,
            "startedAt": int(clock.now * 1000),
            "duration": 120,
        }

    def test_extra_ticks_after_expiry_are_ignored(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(1)
        for _ in range(65):
            timer.tick()

        assert timer.time_left == 0
        assert recorder.locks == [True]

    @pytest.mark.parametrize("minutes", [0, -5])
    def test_start_requires_positive_minutes(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder, minutes: int
    ) -> None:
        timer = make_timer(store, clock, recorder)
        with pytest.raises(ValueError):
            timer.start(minutes)
        assert timer.phase is TimerPhase.IDLE

    def test_start_only_from_idle(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(5)
        with pytest.raises(InvalidTransition):
            timer.start(10)

        timer.pause()
        with pytest.raises(InvalidTransition):
            timer.start(10)

        timer.stop()
        timer.start(10)
        assert timer.time_left == 600


class TestPauseResume:
    def test_pause_then_resume_keeps_time_left(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(5)
        timer.tick()

        timer.pause()
        timer.resume()

        assert timer.time_left == 299
        assert timer.phase is TimerPhase.RUNNING
        assert recorder.updates[-2:] == [(299, False), (299, True)]

    def test_paused_timer_ignores_ticks(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(5)
        timer.pause()
        for _ in range(10):
            timer.tick()

        assert timer.time_left == 300
        assert timer.phase is TimerPhase.PAUSED
        assert json.loads(store.records["timer"])["isPaused"] is True

    def test_pause_and_resume_are_noops_when_idle(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.pause()
        timer.resume()

        assert timer.phase is TimerPhase.IDLE
        assert recorder.updates == []
        assert store.records == {}


class TestStopReset:
    @pytest.mark.parametrize("action", ["stop", "reset"])
    def test_stop_clears_everything(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder, action: str
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(5)
        timer.pause()

        getattr(timer, action)()

        assert timer.phase is TimerPhase.IDLE
        assert timer.time_left == 0
        assert timer.is_paused is False
        assert "timer" not in store.records
        assert recorder.locks == [False]
        assert recorder.updates[-1] == (0, False)

    def test_stop_when_idle_does_not_notify(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.stop()

        assert recorder.locks == []
        assert recorder.updates == []


class TestRehydration:
    def test_budget_elapsed_while_not_running(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        write_snapshot(store, started_at=clock.now - 70, time_left=60)

        timer = make_timer(store, clock, recorder)

        assert recorder.locks == [True]
        assert (60, True) not in recorder.updates
        assert all(active is False for _, active in recorder.updates)
        assert timer.phase is TimerPhase.IDLE
        assert timer.time_left == 0
        assert "timer" not in store.records

    def test_resumes_with_elapsed_time_subtracted(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        write_snapshot(store, started_at=clock.now - 10, time_left=60)

        timer = make_timer(store, clock, recorder)

        assert timer.phase is TimerPhase.RUNNING
        assert timer.time_left == 50
        assert timer.duration == 600
        assert recorder.locks == []
        assert recorder.updates == [(50, True)]
        snapshot = json.loads(store.records["timer"])
        assert snapshot["timeLeft"] == 50
        assert snapshot["startedAt"] == int(clock.now * 1000)

    def test_persisted_progress_is_not_counted_twice(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        timer = make_timer(store, clock, recorder)
        timer.start(1)
        for _ in range(20):
            clock.advance(1)
            timer.tick()

        clock.advance(5)
        restored = make_timer(store, clock, recorder)
        assert restored.time_left == 35

    def test_clock_moved_backwards(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        write_snapshot(store, started_at=clock.now + 300, time_left=60)

        timer = make_timer(store, clock, recorder)
        assert timer.time_left == 60
        assert timer.phase is TimerPhase.RUNNING

    def test_paused_snapshot_restored(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        write_snapshot(store, started_at=clock.now - 3600, time_left=90, is_paused=True)

        timer = make_timer(store, clock, recorder)

        assert timer.phase is TimerPhase.PAUSED
        assert timer.time_left == 90
        assert recorder.locks == []

    def test_paused_snapshot_discarded_when_configured(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder
    ) -> None:
        write_snapshot(store, started_at=clock.now - 5, time_left=90, is_paused=True)

        timer = make_timer(store, clock, recorder, restore_paused=False)

        assert timer.phase is TimerPhase.IDLE
        assert "timer" not in store.records
        assert recorder.locks == []

    @pytest.mark.parametrize(
        "raw",
        [
            "{",
            '"running"',
            '{"timeLeft": 700, "isActive": true, "isPaused": false, "startedAt": 0, "duration": 600}',
            '{"timeLeft": 10, "isActive": true, "isPaused": false, "startedAt": 0, "duration": 0}',
            '{"timeLeft": 10, "isActive": false, "isPaused": false, "startedAt": 0, "duration": 60}',
        ],
    )
    def test_unusable_snapshot_falls_back_to_idle(
        self, store: MemoryStore, clock: FakeClock, recorder: Recorder, raw: str
    ) -> None:
        store.records["timer"] = raw

        timer = make_timer(store, clock, recorder)

        assert timer.phase is TimerPhase.IDLE
        assert "timer" not in store.records
        assert recorder.locks == []


class TestScheduledTicks:
    def test_start_arms_one_tick_and_rearms_after_each(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
    ) -> None:
        timer = make_timer(store, clock, recorder, schedule=scheduler)
        timer.start(1)
        assert len(scheduler.pending) == 1

        for _ in range(3):
            scheduler.fire_next()
            assert len(scheduler.pending) == 1

        assert timer.time_left == 57

    def test_expiry_leaves_nothing_scheduled(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
    ) -> None:
        timer = make_timer(store, clock, recorder, schedule=scheduler)
        timer.start(1)
        for _ in range(60):
            scheduler.fire_next()

        assert scheduler.pending == []
        assert recorder.locks == [True]

    @pytest.mark.parametrize("action", ["stop", "reset", "pause", "close"])
    def test_exit_paths_cancel_the_tick(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
        action: str,
    ) -> None:
        timer = make_timer(store, clock, recorder, schedule=scheduler)
        timer.start(1)
        handle = scheduler.pending[0]

        getattr(timer, action)()

        assert handle.cancelled is True
        assert scheduler.pending == []

    def test_late_callback_cannot_resurrect_stopped_timer(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
    ) -> None:
        timer = make_timer(store, clock, recorder, schedule=scheduler)
        timer.start(1)
        stale = scheduler.pending[0]
        timer.stop()

        stale.callback()

        assert timer.phase is TimerPhase.IDLE
        assert timer.time_left == 0
        assert scheduler.pending == []

    def test_late_callback_ignored_after_restart(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
    ) -> None:
        timer = make_timer(store, clock, recorder, schedule=scheduler)
        timer.start(1)
        stale = scheduler.pending[0]
        timer.stop()
        timer.start(1)

        stale.callback()

        assert timer.time_left == 60
        assert len(scheduler.pending) == 1

    def test_resume_rearms(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
    ) -> None:
        timer = make_timer(store, clock, recorder, schedule=scheduler)
        timer.start(1)
        timer.pause()
        timer.resume()

        assert len(scheduler.pending) == 1

    def test_rehydrated_running_timer_is_armed(
        self,
        store: MemoryStore,
        clock: FakeClock,
        recorder: Recorder,
        scheduler: FakeScheduler,
    ) -> None:
        write_snapshot(store, started_at=clock.now - 10, time_left=60)

        make_timer(store, clock, recorder, schedule=scheduler)

        assert len(scheduler.pending) == 1
