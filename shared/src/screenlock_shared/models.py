"""Persisted record models for Screen Lock.

These models define the schema of every record in the local key-value
store. Timestamps are epoch milliseconds.
"""

from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, Field, model_validator


class Mode(StrEnum):
    PARENT = "parent"
    CHILD = "child"


class AuthMethod(StrEnum):
    PIN = "pin"
    VOICE = "voice"


class TimerPhase(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


PinCode = Annotated[str, Field(min_length=4)]


class SessionRecord(BaseModel):
    """Store: session

    A parent authorization. Only meaningful while inside its timeout.
    """

    authenticated_at: Annotated[int, Field(ge=0)]
    authenticated: bool
    emergency: bool = False


class TimerSnapshot(BaseModel):
    """Store: timer

    ``started_at`` is the instant at which ``time_left`` was valid, so the
    time still left on load is ``time_left - (now - started_at)``.
    """

    time_left: Annotated[int, Field(ge=0)]
    is_active: bool
    is_paused: bool
    started_at: Annotated[int, Field(ge=0)]
    duration: Annotated[int, Field(gt=0)]

    @model_validator(mode="after")
    def _time_left_within_duration(self) -> "TimerSnapshot":
        if self.time_left > self.duration:
            raise ValueError("time_left exceeds duration")
        return self
