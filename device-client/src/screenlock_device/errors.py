"""Errors raised by the session, timer and lock authorities."""


class ScreenLockError(Exception):
    """Base class for all Screen Lock errors."""


class InvalidCredential(ScreenLockError):
    """Wrong PIN, unknown emergency code or no voice keyword matched."""

    def __init__(self, attempts_remaining: int | None = None) -> None:
        self.attempts_remaining = attempts_remaining
        if attempts_remaining is None:
            super().__init__("Invalid credential")
        else:
            super().__init__(f"Invalid credential, {attempts_remaining} attempts remaining")


class RateLimited(ScreenLockError):
    """Too many failed unlock attempts; retry once the cool-down has elapsed."""

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(f"Too many failed attempts, retry in {int(retry_after)} seconds")


class ParentAccessRequired(ScreenLockError):
    """A parent-only operation was attempted without a valid parent session."""


class SessionExpired(ParentAccessRequired):
    """The parent session timed out before the operation."""


class InvalidTransition(ScreenLockError):
    """The timer cannot perform the operation from its current state."""


class MalformedPersistedState(ScreenLockError):
    """A persisted record is corrupt. The record is discarded by the caller."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Malformed {key} record: {reason}")
