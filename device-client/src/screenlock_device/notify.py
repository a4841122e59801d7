"""Toast notifications for time warnings."""

import logging
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from functools import partial
from typing import Callable

logger = logging.getLogger(__name__)


class WarningLevel(IntEnum):
    """Warning thresholds in seconds remaining."""

    TEN_MINUTES = 600
    FIVE_MINUTES = 300
    TWO_MINUTES = 120
    THIRTY_SECONDS = 30


@dataclass
class NotificationState:
    """Tracks which warnings have been shown for the current timer run."""

    shown_warnings: set[WarningLevel] = field(default_factory=set)
    last_time_left: int = 0

    def reset_if_restarted(self, time_left: int, active: bool) -> None:
        """Forget shown warnings once a timer goes idle or is restarted.

        A paused timer keeps its warnings. A run that starts at or below a
        threshold never crosses it, so that level is skipped.
        """
        if not active and time_left == 0:
            self.shown_warnings.clear()
        elif time_left > self.last_time_left:
            self.shown_warnings = {level for level in WarningLevel if level >= time_left}
        self.last_time_left = time_left


def get_warning_level(seconds_remaining: int) -> WarningLevel | None:
    """Get the warning level for remaining time, if any."""
    if seconds_remaining <= WarningLevel.THIRTY_SECONDS:
        return WarningLevel.THIRTY_SECONDS
    elif seconds_remaining <= WarningLevel.TWO_MINUTES:
        return WarningLevel.TWO_MINUTES
    elif seconds_remaining <= WarningLevel.FIVE_MINUTES:
        return WarningLevel.FIVE_MINUTES
    elif seconds_remaining <= WarningLevel.TEN_MINUTES:
        return WarningLevel.TEN_MINUTES
    return None


def should_show_warning(
    seconds_remaining: int,
    active: bool,
    state: NotificationState,
) -> WarningLevel | None:
    """Determine if we should show a warning.

    Returns the warning level to show, or None if no warning needed.
    """
    if not active or seconds_remaining <= 0:
        return None

    level = get_warning_level(seconds_remaining)
    if level is None:
        return None

    if level in state.shown_warnings:
        return None

    return level


def show_time_warning(level: WarningLevel, seconds_remaining: int) -> bool:
    """Show a toast notification for the time warning.

    Returns True if the warning was delivered.
    """
    title = get_warning_title(level)
    message = get_warning_message(level, seconds_remaining)

    if sys.platform != "win32":
        logger.warning("%s: %s", title, message)
        return True

    try:
        from winotify import Notification, audio

        toast = Notification(
            app_id="Screen Lock",
            title=title,
            msg=message,
            duration="short",
        )
        toast.set_audio(audio.Default, loop=False)
        toast.show()

        logger.info("Showed %d-second warning notification", level)
        return True

    except Exception:
        logger.exception("Failed to show notification")
        return False


class TimeWarningNotifier:
    """``on_update`` collaborator that turns timer ticks into warnings.

    With a ``dispatch`` callable the toast is handed off (e.g. to an
    executor) and the level counts as shown once dispatched. Without one the
    toast is shown inline and retried on the next tick if it failed.
    """

    def __init__(self, dispatch: Callable[[Callable[[], bool]], object] | None = None) -> None:
        self.state = NotificationState()
        self._dispatch = dispatch

    def __call__(self, time_left: int, active: bool) -> None:
        self.state.reset_if_restarted(time_left, active)
        level = should_show_warning(time_left, active, self.state)
        if level is None:
            return
        if self._dispatch is not None:
            self.state.shown_warnings.add(level)
            self._dispatch(partial(show_time_warning, level, time_left))
        elif show_time_warning(level, time_left):
            self.state.shown_warnings.add(level)


def get_warning_title(level: WarningLevel) -> str:
    """Get notification title for warning level."""
    if level == WarningLevel.THIRTY_SECONDS:
        return "30 Seconds!"
    elif level == WarningLevel.TWO_MINUTES:
        return "2 Minutes Left!"
    elif level == WarningLevel.FIVE_MINUTES:
        return "5 Minutes Remaining"
    else:
        return "10 Minutes Remaining"


def get_warning_message(level: WarningLevel, seconds_remaining: int) -> str:
    """Get notification message for warning level."""
    if level == WarningLevel.THIRTY_SECONDS:
        return f"Device locking in {seconds_remaining} seconds."
    elif level == WarningLevel.TWO_MINUTES:
        return "Device will lock soon. Save your progress."
    mins = max(1, seconds_remaining // 60)
    if level == WarningLevel.FIVE_MINUTES:
        return f"{mins} minutes left. Time to wrap up and put the device away."
    return f"{mins} minutes left. Please start finishing up your current activity."
