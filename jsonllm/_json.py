from __future__ import annotations

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from jsonllm.errors import ParseError


def load_json(text: str) -> Any:
    """Parse a model payload. A payload that decodes to a JSON string is parsed again."""
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse JSON: {e}") from e

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ParseError(f"Failed to parse nested JSON: {e}") from e
    return value


def validate_into(value: Any, result_type: Any = None) -> Any:
    if result_type is None:
        return value
    try:
        return TypeAdapter(result_type).validate_python(value)
    except ValidationError as e:
        raise ParseError(f"Payload does not match {_type_name(result_type)}: {e}") from e


def _type_name(result_type: Any) -> str:
    return getattr(result_type, "__name__", repr(result_type))
