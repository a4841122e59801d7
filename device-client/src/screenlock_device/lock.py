"""Device lock state and the lock-surface unlock flow."""

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable

from screenlock_shared import AuthMethod, Mode

from .errors import InvalidCredential, RateLimited
from .session import SessionAuthority

logger = logging.getLogger(__name__)

MAX_UNLOCK_ATTEMPTS = 3
LOCKOUT_SECONDS = 5 * 60
DEFAULT_EMERGENCY_CODE = "EMERGENCY123"


@dataclass(frozen=True)
class LockState:
    """What every presentation layer renders."""

    locked: bool
    effective_mode: Mode


@dataclass
class UnlockThrottle:
    """Counts consecutive failed unlock attempts on the lock surface.

    Independent of the session. The counter resets once the cool-down has
    elapsed.
    """

    max_attempts: int = MAX_UNLOCK_ATTEMPTS
    lockout_seconds: float = LOCKOUT_SECONDS
    failures: int = 0
    blocked_until: float | None = None

    def retry_after(self, now: float) -> float:
        """Seconds left in the cool-down, 0 if attempts are allowed."""
        if self.blocked_until is None:
            return 0.0
        if now >= self.blocked_until:
            self.failures = 0
            self.blocked_until = None
            return 0.0
        return self.blocked_until - now

    def record_failure(self, now: float) -> int:
        """Count a failure. Returns attempts remaining before the cool-down."""
        self.failures += 1
        if self.failures >= self.max_attempts:
            self.blocked_until = now + self.lockout_seconds
            return 0
        return self.max_attempts - self.failures

    def record_success(self) -> None:
        self.failures = 0
        self.blocked_until = None


class LockCoordinator:
    """Derives the device's effective UI state from the session and timer.

    ``locked`` latches when the timer runs out and stays set until an
    unlock, regardless of mode.
    """

    def __init__(
        self,
        session: SessionAuthority,
        clock: Callable[[], float] = time.time,
        max_attempts: int = MAX_UNLOCK_ATTEMPTS,
        lockout_seconds: float = LOCKOUT_SECONDS,
        emergency_code: str = DEFAULT_EMERGENCY_CODE,
    ):
        self._session = session
        self._clock = clock
        self._emergency_code = emergency_code
        self._locked = False
        self.throttle = UnlockThrottle(max_attempts=max_attempts, lockout_seconds=lockout_seconds)

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def effective_mode(self) -> Mode:
        return Mode.PARENT if self._session.is_session_valid() else Mode.CHILD

    @property
    def state(self) -> LockState:
        return LockState(locked=self._locked, effective_mode=self.effective_mode)

    def on_timer_lock(self, locked: bool) -> None:
        """Lock callback for TimerAuthority."""
        if locked and not self._locked:
            logger.warning("Device locked")
        elif not locked and self._locked:
            logger.info("Device unlocked by timer stop")
        self._locked = locked

    def on_unlock(self) -> None:
        """Clear the lock without touching the session or the timer."""
        if self._locked:
            logger.info("Device unlocked")
        self._locked = False

    def unlock_with_pin(self, pin: str) -> None:
        """Raises InvalidCredential or RateLimited on failure."""
        self._attempt(lambda: self._session.authenticate(AuthMethod.PIN, pin), "PIN")

    def unlock_with_voice(self, phrase: str) -> None:
        self._attempt(lambda: self._session.authenticate(AuthMethod.VOICE, phrase), "voice")

    def unlock_with_emergency_code(self, code: str) -> None:
        def check() -> bool:
            if not hmac.compare_digest(code.strip().encode(), self._emergency_code.encode()):
                return False
            self._session.emergency_unlock()
            return True

        self._attempt(check, "emergency code")

    def _attempt(self, check: Callable[[], bool], method: str) -> None:
        now = self._clock()
        retry_after = self.throttle.retry_after(now)
        if retry_after > 0:
            logger.info("Unlock via %s rejected, cooling down for %d seconds", method, retry_after)
            raise RateLimited(retry_after)

        if check():
            self.throttle.record_success()
            self.on_unlock()
            return

        remaining = self.throttle.record_failure(now)
        if remaining == 0:
            logger.warning(
                "Too many failed unlock attempts, blocking for %d seconds",
                self.throttle.lockout_seconds,
            )
            raise RateLimited(self.throttle.lockout_seconds)
        logger.info("Unlock via %s failed, %d attempts remaining", method, remaining)
        raise InvalidCredential(remaining)
