"""Turn a normalized ResponseEnvelope into the caller's result or a typed error."""

from __future__ import annotations

from typing import Any

from jsonllm._json import load_json, validate_into
from jsonllm.errors import (
    ContentFiltered,
    EmptyContent,
    ModelRefusal,
    NoToolCalls,
    TokenLimitExceeded,
    ToolNotFound,
    UnexpectedFinishReason,
)
from jsonllm.models import Choice, Mode, ResponseEnvelope, ToolInvocation

FINISH_STOP = "stop"
FINISH_LENGTH = "length"
FINISH_CONTENT_FILTER = "content_filter"
FINISH_TOOL_CALLS = "tool_calls"


def decode(envelope: ResponseEnvelope, mode: Mode, result_type: Any = None) -> Any:
    mode = Mode(mode)
    if mode is Mode.STRUCTURED_OUTPUT:
        return decode_structured(envelope, result_type)
    if mode is Mode.PLAIN_TEXT:
        return decode_text(envelope)
    if not envelope.tool_calls:
        raise NoToolCalls()
    return envelope.tool_calls


def decode_structured(envelope: ResponseEnvelope, result_type: Any = None) -> Any:
    """
    Decode the first choice's JSON payload into `result_type`.

    A dedicated JSON block wins over text. Text is parsed as JSON, and parsed
    again when it turns out to hold a JSON-encoded string.
    """
    choice = _checked_choice(envelope)

    if choice.json_data is not None:
        payload = choice.json_data
        if isinstance(payload, str):
            if not payload.strip():
                raise EmptyContent("response JSON block is empty")
            payload = load_json(payload)
    else:
        if choice.text is None or not choice.text.strip():
            raise EmptyContent("response content is empty")
        payload = load_json(choice.text)

    return validate_into(payload, result_type)


def decode_text(envelope: ResponseEnvelope) -> str:
    choice = _checked_choice(envelope)
    if choice.text is None or not choice.text.strip():
        raise EmptyContent("response content is empty")
    return choice.text


def get_tool_call(envelope: ResponseEnvelope, name: str) -> ToolInvocation:
    return get_all_tool_calls(envelope, name)[0]


def get_all_tool_calls(envelope: ResponseEnvelope, name: str) -> list[ToolInvocation]:
    calls = envelope.tool_calls
    if not calls:
        raise NoToolCalls()
    matches = [tc for tc in calls if tc.name == name]
    if not matches:
        raise ToolNotFound(name)
    return matches


def _checked_choice(envelope: ResponseEnvelope) -> Choice:
    """First choice, once its finish reason says the content can be trusted."""
    if not envelope.choices:
        raise EmptyContent("no choices in the response")

    choice = envelope.choices[0]
    reason = choice.finish_reason

    # Truncation and filtering outrank everything else the choice carries.
    if reason == FINISH_LENGTH:
        raise TokenLimitExceeded()
    if reason == FINISH_CONTENT_FILTER:
        raise ContentFiltered()
    if choice.refusal:
        raise ModelRefusal(choice.refusal)
    if reason != FINISH_STOP:
        raise UnexpectedFinishReason(reason)
    return choice

