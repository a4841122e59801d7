"""PIN management gated by re-authentication."""

import logging

from screenlock_shared import AuthMethod

from .errors import InvalidCredential, ParentAccessRequired
from .session import SessionAuthority

logger = logging.getLogger(__name__)

MIN_PIN_LENGTH = 4


class PinManager:
    """Changes or resets the parent PIN on behalf of a PIN-management screen.

    SessionAuthority does not check who is changing the credential; this
    class does.
    """

    def __init__(self, session: SessionAuthority):
        self._session = session

    def credential_label(self) -> str:
        return "custom" if self._session.has_custom_pin() else "default"

    def change_pin(
        self,
        new_pin: str,
        confirm_pin: str,
        current_pin: str | None = None,
    ) -> None:
        """Set a new custom PIN.

        With a custom PIN in place, ``current_pin`` must match it. Otherwise
        ``current_pin`` may be one of the default PINs, or omitted when a
        parent session is already valid.
        """
        if len(new_pin.strip()) < MIN_PIN_LENGTH:
            raise ValueError(f"PIN must be at least {MIN_PIN_LENGTH} characters")
        if new_pin != confirm_pin:
            raise ValueError("PINs do not match")

        self._reauthenticate(current_pin)
        self._session.set_custom_pin(new_pin)

    def reset_to_default(self, current_pin: str | None) -> None:
        """Remove the custom PIN so the default PINs apply again."""
        if not self._session.has_custom_pin():
            logger.debug("No custom PIN set, nothing to reset")
            return
        self._reauthenticate(current_pin)
        self._session.reset_to_default()

    def _reauthenticate(self, current_pin: str | None) -> None:
        if current_pin is not None:
            if not self._session.authenticate(AuthMethod.PIN, current_pin):
                raise InvalidCredential()
            return

        if self._session.has_custom_pin():
            raise InvalidCredential()
        if not self._session.is_session_valid():
            raise ParentAccessRequired("Parent mode required to set a PIN")
