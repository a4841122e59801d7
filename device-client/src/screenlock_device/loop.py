"""Guard runtime for the Screen Lock device client."""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import Callable

from screenlock_shared import Mode, SessionRecord, TimerPhase, TimerSnapshot

from .config import Config
from .errors import (
    InvalidCredential,
    InvalidTransition,
    MalformedPersistedState,
    ParentAccessRequired,
    RateLimited,
    SessionExpired,
)
from .lock import LockCoordinator
from .notify import TimeWarningNotifier
from .pins import PinManager
from .session import SessionAuthority, is_record_live
from .store import (
    SESSION_KEY,
    TIMER_KEY,
    FileStore,
    KeyValueStore,
    load_model,
    load_pin,
)
from .timer import Schedule, TimerAuthority, remaining_after_restart
from .tray import TrayManager, TrayState, format_time

logger = logging.getLogger(__name__)

REFRESH_SECONDS = 1.0


@dataclass(frozen=True)
class GuardStatus:
    """Read-only projection for presentation layers."""

    mode: Mode
    locked: bool
    phase: TimerPhase
    time_left: int
    emergency: bool
    custom_pin: bool


class Guard:
    """One device's session, timer and lock, wired together.

    Timer control is parent-only; the guard enforces that before calling
    into the timer.
    """

    def __init__(
        self,
        config: Config,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        schedule: Schedule | None = None,
        dispatch: Callable[[Callable[[], bool]], object] | None = None,
    ):
        self.config = config
        self.notifier = TimeWarningNotifier(dispatch)
        self.session = SessionAuthority(
            store,
            clock=clock,
            session_timeout=config.session_timeout_minutes * 60,
            emergency_timeout=config.emergency_timeout_minutes * 60,
        )
        self.pins = PinManager(self.session)
        self.coordinator = LockCoordinator(
            self.session,
            clock=clock,
            max_attempts=config.max_unlock_attempts,
            lockout_seconds=config.lockout_minutes * 60,
            emergency_code=config.emergency_code,
        )
        # Built last: rehydrating an expired snapshot fires on_lock immediately.
        self.timer = TimerAuthority(
            store,
            clock=clock,
            on_update=self.notifier,
            on_lock=self.coordinator.on_timer_lock,
            schedule=schedule,
            restore_paused=config.restore_paused_timer,
        )

    def status(self) -> GuardStatus:
        state = self.coordinator.state
        return GuardStatus(
            mode=state.effective_mode,
            locked=state.locked,
            phase=self.timer.phase,
            time_left=self.timer.time_left,
            emergency=self.session.is_emergency,
            custom_pin=self.session.has_custom_pin(),
        )

    def start_timer(self, minutes: int) -> None:
        self._require_parent()
        self.timer.start(minutes)

    def pause_timer(self) -> None:
        self._require_parent()
        self.timer.pause()

    def resume_timer(self) -> None:
        self._require_parent()
        self.timer.resume()

    def stop_timer(self) -> None:
        self._require_parent()
        self.timer.stop()

    def reset_timer(self) -> None:
        self._require_parent()
        self.timer.reset()

    def logout(self) -> None:
        self.session.logout()
        logger.info("Switched to child mode")

    def close(self) -> None:
        self.timer.close()

    def _require_parent(self) -> None:
        was_authenticated = self.session.is_authenticated
        if self.session.is_session_valid():
            return
        if was_authenticated:
            raise SessionExpired("Parent session expired, authenticate again")
        raise ParentAccessRequired("Only parents can change the screen time timer")


def read_status(
    config: Config,
    store: KeyValueStore,
    clock: Callable[[], float] = time.time,
) -> GuardStatus:
    """Project the persisted state without rehydrating it.

    Nothing is written or deleted, so a budget found spent here still locks
    the next guard that loads it. Corrupt records read as absent.
    """
    now = clock()

    mode = Mode.CHILD
    emergency = False
    try:
        record = load_model(store, SESSION_KEY, SessionRecord)
    except MalformedPersistedState:
        record = None
    if record is not None and is_record_live(
        record,
        now,
        session_timeout=config.session_timeout_minutes * 60,
        emergency_timeout=config.emergency_timeout_minutes * 60,
    ):
        mode = Mode.PARENT
        emergency = record.emergency

    locked = False
    phase = TimerPhase.IDLE
    time_left = 0
    try:
        snapshot = load_model(store, TIMER_KEY, TimerSnapshot)
    except MalformedPersistedState:
        snapshot = None
    if snapshot is not None and snapshot.is_active:
        if snapshot.is_paused:
            if config.restore_paused_timer:
                phase = TimerPhase.PAUSED
                time_left = snapshot.time_left
        else:
            time_left = remaining_after_restart(snapshot, now)
            if time_left > 0:
                phase = TimerPhase.RUNNING
            else:
                locked = True

    try:
        custom_pin = load_pin(store) is not None
    except MalformedPersistedState:
        custom_pin = False

    return GuardStatus(
        mode=mode,
        locked=locked,
        phase=phase,
        time_left=time_left,
        emergency=emergency,
        custom_pin=custom_pin,
    )


HELP_TEXT = """\
Commands:
  status               Show mode, lock and timer state
  pin <PIN>            Parent PIN (unlocks the device and enters parent mode)
  voice <phrase>       Voice phrase check
  emergency <code>     Emergency unlock (short parent session)
  start <minutes>      Start the screen time timer (parent)
  pause | resume       Pause or resume the timer (parent)
  stop | reset         Stop the timer (parent)
  logout               Switch to child mode
  help                 Show this help"""


def format_status(status: GuardStatus) -> str:
    mode = f"{status.mode} (emergency)" if status.emergency else str(status.mode)
    device = "locked" if status.locked else "unlocked"
    if status.phase is TimerPhase.IDLE:
        timer = "idle"
    else:
        timer = f"{status.phase}, {format_time(status.time_left)} left"
    pin = "custom" if status.custom_pin else "default"
    return f"Mode: {mode} | Device: {device} | Timer: {timer} | PIN: {pin}"


def run_command(guard: Guard, line: str) -> str:
    """Execute one console or tray command and describe the outcome."""
    name, _, arg = line.strip().partition(" ")
    name = name.lower()
    arg = arg.strip()

    try:
        if name in ("", "help"):
            return HELP_TEXT
        elif name == "status":
            return format_status(guard.status())
        elif name == "pin":
            guard.coordinator.unlock_with_pin(arg)
            return "Parent mode unlocked"
        elif name == "voice":
            guard.coordinator.unlock_with_voice(arg)
            return "Parent identity verified by voice phrase"
        elif name == "emergency":
            guard.coordinator.unlock_with_emergency_code(arg)
            return f"Emergency access granted for {guard.config.emergency_timeout_minutes} minutes"
        elif name == "start":
            minutes = int(arg)
            guard.start_timer(minutes)
            return f"Screen time set for {minutes} minutes"
        elif name == "pause":
            guard.pause_timer()
            return "Timer paused"
        elif name == "resume":
            guard.resume_timer()
            return "Timer resumed"
        elif name == "stop":
            guard.stop_timer()
            return "Timer stopped"
        elif name == "reset":
            guard.reset_timer()
            return "Timer reset"
        elif name == "logout":
            guard.logout()
            return "Switched to child mode"
        return f"Unknown command: {name} (try 'help')"
    except InvalidCredential as e:
        if e.attempts_remaining is None:
            return "Incorrect credential"
        return f"Incorrect credential, {e.attempts_remaining} attempts remaining"
    except RateLimited as e:
        minutes = max(1, round(e.retry_after / 60))
        return f"Too many failed attempts, try again in {minutes} minutes"
    except SessionExpired:
        return "Parent session expired, enter the PIN again"
    except ParentAccessRequired:
        return "Only parents can do that. Ask a parent to unlock parent mode."
    except InvalidTransition as e:
        return str(e)
    except ValueError:
        return f"Invalid argument for {name}: {arg!r}"


def run_guard_loop(
    config: Config,
    enable_tray: bool = True,
    enable_console: bool = True,
    start_minutes: int | None = None,
    pin: str | None = None,
) -> None:
    """Run the guard. Does not return unless interrupted or quit from the tray."""
    try:
        asyncio.run(_run(config, enable_tray, enable_console, start_minutes, pin))
    except KeyboardInterrupt:
        logger.info("Guard loop interrupted")


async def _run(
    config: Config,
    enable_tray: bool,
    enable_console: bool,
    start_minutes: int | None,
    pin: str | None,
) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    # Toasts block on Windows; show them off the loop thread.
    guard = Guard(
        config,
        FileStore(config.state_dir),
        schedule=loop.call_later,
        dispatch=partial(loop.run_in_executor, None),
    )

    # Tray and console run on their own threads; commands hop onto the loop.
    def submit(line: str) -> None:
        loop.call_soon_threadsafe(_log_command, guard, line)

    def request_quit() -> None:
        loop.call_soon_threadsafe(stop_event.set)

    tray: TrayManager | None = None
    if enable_tray:
        tray = TrayManager(on_command=submit, on_quit=request_quit)
        tray.start()

    if enable_console:
        threading.Thread(target=_read_console, args=(loop, guard), daemon=True).start()

    if start_minutes is not None:
        if pin is not None:
            logger.info(run_command(guard, f"pin {pin}"))
        logger.info(run_command(guard, f"start {start_minutes}"))

    logger.info("Guard running (%s)", format_status(guard.status()))

    try:
        while not stop_event.is_set():
            if tray:
                tray.update(_tray_state(guard.status()))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=REFRESH_SECONDS)
            except asyncio.TimeoutError:
                pass
    finally:
        guard.close()
        if tray:
            tray.stop()
        logger.info("Guard stopped")


def _log_command(guard: Guard, line: str) -> None:
    command = line.split(" ", 1)[0]
    logger.info("%s: %s", command, run_command(guard, line))


def _read_console(loop: asyncio.AbstractEventLoop, guard: Guard) -> None:
    """Read commands from stdin until EOF."""
    while True:
        try:
            line = input()
        except EOFError:
            logger.debug("Console closed")
            return
        loop.call_soon_threadsafe(_print_command, guard, line)


def _print_command(guard: Guard, line: str) -> None:
    print(run_command(guard, line))


def _tray_state(status: GuardStatus) -> TrayState:
    return TrayState(
        mode=status.mode,
        locked=status.locked,
        seconds_remaining=status.time_left,
        running=status.phase is TimerPhase.RUNNING,
        paused=status.phase is TimerPhase.PAUSED,
        emergency=status.emergency,
    )
