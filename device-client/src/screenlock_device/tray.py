"""System tray icon for Screen Lock."""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from PIL import Image, ImageDraw, ImageFont
from pystray import Icon, Menu, MenuItem

from screenlock_shared import Mode

logger = logging.getLogger(__name__)


class TrayColor(Enum):
    """Color states for the tray icon."""

    GREEN = (76, 175, 80)    # > 30 min remaining
    YELLOW = (255, 193, 7)   # 10-30 min remaining
    RED = (244, 67, 54)      # < 10 min remaining, or locked
    GRAY = (158, 158, 158)   # Idle/paused


def get_tray_color(seconds_remaining: int, running: bool, locked: bool) -> TrayColor:
    """Determine tray icon color based on remaining time."""
    if locked:
        return TrayColor.RED
    if not running:
        return TrayColor.GRAY
    if seconds_remaining > 30 * 60:
        return TrayColor.GREEN
    if seconds_remaining > 10 * 60:
        return TrayColor.YELLOW
    return TrayColor.RED


def format_time(seconds: int) -> str:
    """Format seconds as MM:SS."""
    seconds = max(0, seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def create_tray_icon_image(
    seconds_remaining: int,
    color: TrayColor,
    size: int = 64,
) -> Image.Image:
    """Create a tray icon image showing remaining minutes."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    padding = 2
    draw.ellipse(
        [padding, padding, size - padding, size - padding],
        fill=color.value,
    )

    # Round up so the last minute still shows 1
    mins = max(0, (seconds_remaining + 59) // 60)
    text = str(mins) if mins < 100 else "99+"

    font_size = size // 2 if len(text) <= 2 else size // 3
    try:
        font = ImageFont.truetype("arial.ttf", font_size)
    except OSError:
        font = ImageFont.load_default()

    bbox = draw.textbbox((0, 0), text, font=font)
    text_width = bbox[2] - bbox[0]
    text_height = bbox[3] - bbox[1]
    x = (size - text_width) // 2
    y = (size - text_height) // 2 - bbox[1]

    draw.text((x, y), text, fill=(255, 255, 255), font=font)

    return img


@dataclass
class TrayState:
    """State displayed in the tray icon."""

    mode: Mode = Mode.CHILD
    locked: bool = False
    seconds_remaining: int = 0
    running: bool = False
    paused: bool = False
    emergency: bool = False


def get_tooltip(state: TrayState) -> str:
    if state.locked:
        return "Screen Lock: device locked"
    if state.running:
        return f"Screen Lock: {format_time(state.seconds_remaining)} left"
    if state.paused:
        return f"Screen Lock: {format_time(state.seconds_remaining)} left (paused)"
    return "Screen Lock: no timer running"


class TrayManager:
    """Manages the system tray icon.

    Menu actions are handed to ``on_command`` from the tray thread. The
    receiver must marshal them onto its own thread.
    """

    def __init__(
        self,
        on_command: Callable[[str], None] | None = None,
        on_quit: Callable[[], None] | None = None,
    ):
        self._state = TrayState()
        self._icon: Icon | None = None
        self._on_command = on_command
        self._on_quit = on_quit
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the tray icon in a background thread."""
        self._icon = Icon(
            name="Screen Lock",
            icon=self._create_icon(),
            title=self._get_tooltip(),
            menu=self._create_menu(),
        )
        thread = threading.Thread(target=self._icon.run, daemon=True)
        thread.start()
        logger.info("Tray icon started")

    def stop(self) -> None:
        """Stop the tray icon."""
        if self._icon:
            self._icon.stop()
            self._icon = None
            logger.info("Tray icon stopped")

    def update(self, state: TrayState) -> None:
        """Update the tray icon state."""
        with self._lock:
            if state == self._state:
                return
            self._state = state

        if self._icon:
            self._icon.icon = self._create_icon()
            self._icon.title = self._get_tooltip()
            self._icon.menu = self._create_menu()

    def _create_icon(self) -> Image.Image:
        """Create the current tray icon image."""
        with self._lock:
            color = get_tray_color(
                self._state.seconds_remaining,
                self._state.running,
                self._state.locked,
            )
            return create_tray_icon_image(self._state.seconds_remaining, color)

    def _get_tooltip(self) -> str:
        with self._lock:
            return get_tooltip(self._state)

    def _create_menu(self) -> Menu:
        """Create the right-click menu."""
        with self._lock:
            state = self._state

        is_parent = state.mode == Mode.PARENT
        if is_parent:
            mode_text = "Parent mode (emergency)" if state.emergency else "Parent mode"
        else:
            mode_text = "Child mode"
        lock_text = "Device locked" if state.locked else "Device unlocked"

        if state.running:
            time_text = f"{format_time(state.seconds_remaining)} left"
        elif state.paused:
            time_text = f"{format_time(state.seconds_remaining)} left (paused)"
        else:
            time_text = "No timer running"

        items = [
            MenuItem(mode_text, None, enabled=False),
            MenuItem(lock_text, None, enabled=False),
            MenuItem(time_text, None, enabled=False),
            Menu.SEPARATOR,
            MenuItem(
                "Pause timer",
                lambda: self._command("pause"),
                enabled=is_parent and state.running,
            ),
            MenuItem(
                "Resume timer",
                lambda: self._command("resume"),
                enabled=is_parent and state.paused,
            ),
            MenuItem(
                "Stop timer",
                lambda: self._command("stop"),
                enabled=is_parent and (state.running or state.paused),
            ),
            MenuItem(
                "Switch to child mode",
                lambda: self._command("logout"),
                enabled=is_parent,
            ),
            Menu.SEPARATOR,
            MenuItem("Quit", self._on_quit_clicked),
        ]

        return Menu(*items)

    def _command(self, name: str) -> None:
        logger.info("Tray command: %s", name)
        if self._on_command:
            self._on_command(name)

    def _on_quit_clicked(self) -> None:
        """Handle quit from menu."""
        logger.info("Quit requested from tray")
        if self._on_quit:
            self._on_quit()
        self.stop()
