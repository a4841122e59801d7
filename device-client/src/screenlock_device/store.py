"""Local key-value store for session, timer and PIN records."""

import logging
from pathlib import Path
from typing import Protocol, TypeVar

from pydantic import BaseModel

from screenlock_shared.records import (
    MalformedRecord,
    model_to_record,
    pin_to_record,
    record_to_model,
    record_to_pin,
)

from .errors import MalformedPersistedState

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SESSION_KEY = "session"
TIMER_KEY = "timer"
PIN_KEY = "pin"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class FileStore:
    """Stores each record as a JSON file in ``state_dir``.

    Writes are best-effort: a failed write is logged and the in-memory state
    carries on.
    """

    def __init__(self, state_dir: Path):
        self._state_dir = state_dir
        self._state_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._state_dir / f"{key}.json"

    def get(self, key: str) -> str | None:
        """Raises MalformedPersistedState if the file is not UTF-8 text."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPersistedState(key, f"not UTF-8 text ({e.reason})") from e
        except OSError:
            logger.exception("Failed to read %s record", key)
            return None

    def set(self, key: str, value: str) -> None:
        try:
            self._path(key).write_text(value, encoding="utf-8")
        except OSError:
            logger.exception("Failed to write %s record", key)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError:
            logger.exception("Failed to delete %s record", key)


class MemoryStore:
    """In-process store, used by tests and one-shot commands."""

    def __init__(self) -> None:
        self.records: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.records.get(key)

    def set(self, key: str, value: str) -> None:
        self.records[key] = value

    def delete(self, key: str) -> None:
        self.records.pop(key, None)


def load_model(store: KeyValueStore, key: str, model: type[ModelT]) -> ModelT | None:
    """Load a record. Returns None if absent.

    Raises MalformedPersistedState if the record is corrupt.
    """
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return record_to_model(raw, model)
    except MalformedRecord as e:
        raise MalformedPersistedState(key, str(e)) from e


def save_model(store: KeyValueStore, key: str, model: BaseModel) -> None:
    store.set(key, model_to_record(model))


def load_pin(store: KeyValueStore) -> str | None:
    """Load the custom PIN. Returns None if absent.

    Raises MalformedPersistedState if the record is corrupt.
    """
    raw = store.get(PIN_KEY)
    if raw is None:
        return None
    try:
        return record_to_pin(raw)
    except MalformedRecord as e:
        raise MalformedPersistedState(PIN_KEY, str(e)) from e


def save_pin(store: KeyValueStore, pin: str) -> None:
    store.set(PIN_KEY, pin_to_record(pin))
