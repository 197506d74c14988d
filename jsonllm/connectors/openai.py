from __future__ import annotations

from typing import Any

from jsonllm.connectors.base import LLMConnector
from jsonllm.models import (
    Choice,
    ImageBase64Part,
    ImageUrlPart,
    RequestEnvelope,
    ResponseEnvelope,
    TextPart,
    ToolInvocation,
    Usage,
)
from jsonllm.schema import ToolDefinition


def _tool_to_openai(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters.to_dict(),
            "strict": tool.strict,
        },
    }


def _part_to_openai(part: Any) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImageUrlPart):
        return {"type": "image_url", "image_url": {"url": part.url}}
    if isinstance(part, ImageBase64Part):
        return {"type": "image_url", "image_url": {"url": part.data_url}}
    raise TypeError(f"Unsupported content part: {part!r}")


class OpenAIConnector(LLMConnector):
    """Chat Completions API: native json_schema response_format, bearer auth."""

    name = "openai"
    supports_native_structured_output = True

    def to_wire(self, envelope: RequestEnvelope) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": envelope.model,
            "messages": self._messages_to_dicts(envelope),
        }
        if envelope.response_schema is not None and envelope.native_structured_output:
            json_schema: dict[str, Any] = {
                "name": envelope.schema_name,
                "schema": envelope.response_schema.to_dict(),
            }
            if envelope.strict:
                json_schema["strict"] = True
            body["response_format"] = {"type": "json_schema", "json_schema": json_schema}
        if envelope.tools:
            body["tools"] = [_tool_to_openai(t) for t in envelope.tools]
        if envelope.temperature is not None:
            body["temperature"] = envelope.temperature
        if envelope.max_tokens is not None:
            body["max_tokens"] = envelope.max_tokens
        return body

    def _messages_to_dicts(self, envelope: RequestEnvelope) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = []
        if envelope.system:
            result.append({"role": "system", "content": envelope.system})
        for msg in envelope.messages:
            if isinstance(msg.content, str):
                result.append({"role": msg.role, "content": msg.content})
            else:
                result.append({
                    "role": msg.role,
                    "content": [_part_to_openai(p) for p in msg.content],
                })
        return result

    def _parse_envelope(self, data: dict[str, Any]) -> ResponseEnvelope:
        choices = [self._parse_choice(c) for c in data.get("choices") or []]
        usage = data.get("usage") or {}
        return ResponseEnvelope(
            id=data.get("id") or "",
            model=data.get("model") or "",
            choices=choices,
            usage=Usage(
                input_tokens=usage.get("prompt_tokens") or 0,
                output_tokens=usage.get("completion_tokens") or 0,
            ),
        )

    def _parse_choice(self, choice: dict[str, Any]) -> Choice:
        message = choice.get("message") or {}
        content = message.get("content")

        text: str | None = None
        json_data: Any = None
        if isinstance(content, str):
            text = content
        elif isinstance(content, list):
            texts = [p.get("text", "") for p in content if p.get("type") == "text"]
            text = "".join(texts) if texts else None
        elif isinstance(content, dict):
            json_data = content

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            fn = tc.get("function") or {}
            tool_calls.append(ToolInvocation(
                id=tc.get("id") or "",
                name=fn.get("name") or "",
                arguments=fn.get("arguments") or "{}",
            ))

        finish_reason = choice.get("finish_reason") or ""
        if finish_reason == "function_call":
            finish_reason = "tool_calls"

        return Choice(
            finish_reason=finish_reason,
            text=text,
            json_data=json_data,
            refusal=message.get("refusal"),
            tool_calls=tool_calls,
        )
