"""Parent authentication, session expiry and PIN credentials."""

import hmac
import logging
import time
from typing import Callable

from screenlock_shared import AuthMethod, SessionRecord

from .errors import MalformedPersistedState
from .store import PIN_KEY, SESSION_KEY, KeyValueStore, load_model, load_pin, save_model, save_pin

logger = logging.getLogger(__name__)

DEFAULT_PINS = ("1234", "0000", "9999")
VOICE_KEYWORDS = ("parent", "unlock", "emergency", "homework", "adult")

SESSION_TIMEOUT_SECONDS = 30 * 60
EMERGENCY_TIMEOUT_SECONDS = 10 * 60


def is_record_live(
    record: SessionRecord,
    now: float,
    session_timeout: float = SESSION_TIMEOUT_SECONDS,
    emergency_timeout: float = EMERGENCY_TIMEOUT_SECONDS,
) -> bool:
    """Whether a persisted session is still within its timeout at ``now``."""
    if not record.authenticated:
        return False
    elapsed = now - record.authenticated_at / 1000
    timeout = emergency_timeout if record.emergency else session_timeout
    # A record stamped in the future means the clock moved backwards.
    return 0 <= elapsed < timeout


class SessionAuthority:
    """Owns parent authentication and the persisted parent session.

    Expiry is detected lazily: ``is_session_valid()`` logs out an expired
    session as a side effect of the read. There is no background timer.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        emergency_timeout: float = EMERGENCY_TIMEOUT_SECONDS,
    ):
        self._store = store
        self._clock = clock
        self._session_timeout = session_timeout
        self._emergency_timeout = emergency_timeout
        self._authenticated = False
        self._authenticated_at = 0.0
        self._emergency = False
        self._rehydrate()

    @property
    def is_authenticated(self) -> bool:
        """Raw authenticated flag, without the expiry check."""
        return self._authenticated

    @property
    def is_emergency(self) -> bool:
        return self._authenticated and self._emergency

    def authenticate(self, method: AuthMethod | str, value: str) -> bool:
        """Check a PIN or a voice phrase and start a parent session on success."""
        method = AuthMethod(method)
        if method is AuthMethod.PIN:
            is_valid = self._check_pin(value)
        else:
            is_valid = self._check_voice(value)

        if not is_valid:
            logger.info("Parent authentication via %s failed", method)
            return False

        self._start_session(emergency=False)
        logger.info("Parent authenticated via %s", method)
        return True

    def emergency_unlock(self) -> None:
        """Start a short-lived emergency parent session."""
        self._start_session(emergency=True)
        logger.warning(
            "Emergency parent session granted for %d minutes",
            self._emergency_timeout // 60,
        )

    def logout(self) -> None:
        self._authenticated = False
        self._authenticated_at = 0.0
        self._emergency = False
        self._store.delete(SESSION_KEY)

    def is_session_valid(self) -> bool:
        if not self._authenticated:
            return False
        if self._clock() - self._authenticated_at < self._timeout():
            return True
        logger.info("Parent session expired, switching to child mode")
        self.logout()
        return False

    def seconds_remaining(self) -> float:
        """Seconds left in the current session. Does not log out."""
        if not self._authenticated:
            return 0.0
        return max(0.0, self._timeout() - (self._clock() - self._authenticated_at))

    def set_custom_pin(self, pin: str) -> None:
        """Replace the parent credential with a custom PIN.

        Callers must re-authenticate with the current custom PIN first.
        Raises ValueError if the PIN is shorter than 4 characters.
        """
        save_pin(self._store, pin.strip())
        logger.info("Custom parent PIN set")

    def has_custom_pin(self) -> bool:
        return self.get_custom_pin() is not None

    def get_custom_pin(self) -> str | None:
        """Read the custom PIN for comparison. Never display it."""
        try:
            return load_pin(self._store)
        except MalformedPersistedState:
            logger.warning("Discarding corrupt PIN record, default PINs apply", exc_info=True)
            self._store.delete(PIN_KEY)
            return None

    def reset_to_default(self) -> None:
        """Delete the custom PIN. Callers must re-authenticate first."""
        self._store.delete(PIN_KEY)
        logger.info("Parent PIN reset to defaults")

    def _check_pin(self, value: str) -> bool:
        candidate = value.strip().encode()
        custom = self.get_custom_pin()
        # Same number of comparisons whichever credential applies.
        pins = (custom,) * len(DEFAULT_PINS) if custom is not None else DEFAULT_PINS
        matched = False
        for pin in pins:
            matched |= hmac.compare_digest(candidate, pin.encode())
        return matched

    def _check_voice(self, value: str) -> bool:
        phrase = value.lower()
        return any(keyword in phrase for keyword in VOICE_KEYWORDS)

    def _timeout(self) -> float:
        return self._emergency_timeout if self._emergency else self._session_timeout

    def _start_session(self, emergency: bool) -> None:
        now = self._clock()
        self._authenticated = True
        self._authenticated_at = now
        self._emergency = emergency
        save_model(
            self._store,
            SESSION_KEY,
            SessionRecord(
                authenticated_at=int(now * 1000),
                authenticated=True,
                emergency=emergency,
            ),
        )

    def _rehydrate(self) -> None:
        """Restore a persisted session that is still within its timeout."""
        try:
            record = load_model(self._store, SESSION_KEY, SessionRecord)
        except MalformedPersistedState:
            logger.warning("Discarding corrupt session record", exc_info=True)
            self._store.delete(SESSION_KEY)
            return

        if record is None:
            return

        if is_record_live(record, self._clock(), self._session_timeout, self._emergency_timeout):
            self._authenticated = True
            self._authenticated_at = record.authenticated_at / 1000
            self._emergency = record.emergency
            logger.info("Restored parent session (%d seconds left)", self.seconds_remaining())
        else:
            logger.info("Discarding stale session record")
            self._store.delete(SESSION_KEY)
