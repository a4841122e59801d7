"""Configuration for the device client."""

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field


def default_state_dir() -> Path:
    return Path.home() / ".screenlock" / "state"


class Config(BaseModel):
    """Local configuration for this device."""

    state_dir: Path = Field(default_factory=default_state_dir)
    session_timeout_minutes: Annotated[int, Field(gt=0)] = 30
    emergency_timeout_minutes: Annotated[int, Field(gt=0)] = 10
    max_unlock_attempts: Annotated[int, Field(gt=0)] = 3
    lockout_minutes: Annotated[int, Field(gt=0)] = 5
    emergency_code: str = "EMERGENCY123"
    restore_paused_timer: bool = True


def load_config(path: Path) -> Config:
    """Load configuration from a JSON file."""
    return Config.model_validate_json(path.read_text())
