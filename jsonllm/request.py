from __future__ import annotations

import json
from typing import Sequence

from jsonllm.errors import EmptyMessages, ModeMismatch
from jsonllm.models import Message, Mode, RequestEnvelope, RequestOptions
from jsonllm.schema import ObjectSchema, ToolDefinition

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
JSON_INSTRUCTION = (
    "Return your response as a valid JSON object. "
    "Do not include any explanations or text outside of the JSON object."
)


def assemble_request(
    model: str,
    messages: Sequence[Message],
    mode: Mode,
    payload: ObjectSchema | Sequence[ToolDefinition] | None = None,
    options: RequestOptions | None = None,
    *,
    native_structured_output: bool = True,
    default_max_tokens: int | None = None,
    default_temperature: float | None = None,
) -> RequestEnvelope:
    """
    Combine model, messages and a mode payload into a RequestEnvelope.

    When the provider has no native structured-output field, the schema is
    appended to the system prompt as a plain-language JSON instruction.
    """
    if not messages:
        raise EmptyMessages()

    mode = Mode(mode)
    opts = options or RequestOptions()
    schema, tools = _split_payload(mode, payload)

    system = opts.system
    if schema is not None and not native_structured_output:
        system = _with_json_instruction(system, schema)

    return RequestEnvelope(
        model=model,
        messages=tuple(messages),
        mode=mode,
        system=system,
        response_schema=schema,
        schema_name=opts.schema_name,
        strict=opts.strict,
        native_structured_output=native_structured_output,
        tools=tools,
        temperature=opts.temperature if opts.temperature is not None else default_temperature,
        max_tokens=opts.max_tokens if opts.max_tokens is not None else default_max_tokens,
    )


def _split_payload(
    mode: Mode,
    payload: ObjectSchema | Sequence[ToolDefinition] | None,
) -> tuple[ObjectSchema | None, tuple[ToolDefinition, ...] | None]:
    if mode is Mode.STRUCTURED_OUTPUT:
        if not isinstance(payload, ObjectSchema):
            raise ModeMismatch("structured output mode requires an ObjectSchema payload")
        return payload, None

    if mode is Mode.TOOL_CALL:
        if isinstance(payload, ObjectSchema) or not payload:
            raise ModeMismatch("tool call mode requires a non-empty list of ToolDefinition")
        tools = tuple(payload)
        if not all(isinstance(t, ToolDefinition) for t in tools):
            raise ModeMismatch("tool call payload must contain only ToolDefinition items")
        return None, tools

    if payload is not None:
        raise ModeMismatch("plain text mode takes no payload")
    return None, None


def _with_json_instruction(system: str | None, schema: ObjectSchema) -> str:
    base = system or DEFAULT_SYSTEM_PROMPT
    schema_json = json.dumps(schema.to_dict(), ensure_ascii=False)
    return f"{base} {JSON_INSTRUCTION} The JSON object must match this JSON schema: {schema_json}"
