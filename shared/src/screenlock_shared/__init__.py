from .models import (
    AuthMethod,
    Mode,
    PinCode,
    SessionRecord,
    TimerPhase,
    TimerSnapshot,
)

__all__ = [
    "AuthMethod",
    "Mode",
    "PinCode",
    "SessionRecord",
    "TimerPhase",
    "TimerSnapshot",
]
