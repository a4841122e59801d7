"""Record serialization helpers.

Handles conversion between Python snake_case and the camelCase JSON that is
written to the local store.
"""

import json
import re
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from .models import PinCode

ModelT = TypeVar("ModelT", bound=BaseModel)

_pin_adapter: TypeAdapter[str] = TypeAdapter(PinCode)


class MalformedRecord(ValueError):
    """A stored record could not be parsed or failed validation."""


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def to_snake(string: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", string).lower()


def model_to_record(model: BaseModel) -> str:
    """Serialize a pydantic model to a camelCase JSON record."""
    data = model.model_dump(mode="json")
    return json.dumps(_convert_keys(data, to_camel))


def record_to_model(raw: str, model: type[ModelT]) -> ModelT:
    """Parse a camelCase JSON record into ``model``.

    Raises MalformedRecord for unparseable JSON, a non-object payload or a
    record that fails validation.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedRecord(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedRecord(f"expected an object, got {type(data).__name__}")
    try:
        return model.model_validate(_convert_keys(data, to_snake))
    except ValidationError as e:
        raise MalformedRecord(str(e)) from e


def pin_to_record(pin: str) -> str:
    return json.dumps(_pin_adapter.validate_python(pin))


def record_to_pin(raw: str) -> str:
    """Parse a stored PIN, which is a bare JSON string."""
    try:
        return _pin_adapter.validate_json(raw)
    except ValidationError as e:
        raise MalformedRecord(str(e)) from e


def _convert_keys(data: dict[str, Any], convert: Callable[[str], str]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[convert(key)] = _convert_keys(value, convert)
        else:
            result[convert(key)] = value
    return result
