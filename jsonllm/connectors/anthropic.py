from __future__ import annotations

import json
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

DEFAULT_MAX_TOKENS = 4096

# Messages API stop reasons -> normalized finish reasons
STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "stop": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
    "refusal": "stop",  # surfaced through Choice.refusal
}


def _tool_to_anthropic(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": tool.parameters.to_dict(),
    }


def _part_to_anthropic(part: Any) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImageUrlPart):
        return {"type": "image", "source": {"type": "url", "url": part.url}}
    if isinstance(part, ImageBase64Part):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": part.media_type, "data": part.data},
        }
    raise TypeError(f"Unsupported content part: {part!r}")


class AnthropicConnector(LLMConnector):
    """
    Messages API. No native structured-output field, so structured calls carry
    the schema as a system-prompt instruction. Auth is x-api-key plus a version
    header; max_tokens is mandatory.
    """

    name = "anthropic"
    supports_native_structured_output = False

    def to_wire(self, envelope: RequestEnvelope) -> dict[str, Any]:
        system_parts = [envelope.system] if envelope.system else []
        messages: list[dict[str, Any]] = []
        for msg in envelope.messages:
            # The Messages API has no system role; fold those turns into `system`.
            if msg.role == "system":
                system_parts.append(msg.plain_text())
                continue
            messages.append({
                "role": msg.role,
                "content": [_part_to_anthropic(p) for p in msg.parts()],
            })

        body: dict[str, Any] = {
            "model": envelope.model,
            "messages": messages,
            "max_tokens": envelope.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if envelope.temperature is not None:
            body["temperature"] = envelope.temperature
        if envelope.tools:
            body["tools"] = [_tool_to_anthropic(t) for t in envelope.tools]
            body["tool_choice"] = {"type": "auto"}
        return body

    def _parse_envelope(self, data: dict[str, Any]) -> ResponseEnvelope:
        # Live API puts blocks at the top level; some gateways nest them under "message".
        message = data["message"] if isinstance(data.get("message"), dict) else data

        texts: list[str] = []
        json_data: Any = None
        tool_calls: list[ToolInvocation] = []
        for block in message.get("content") or []:
            block_type = block.get("type")
            if block_type == "text":
                texts.append(block.get("text") or "")
            elif block_type == "json" and json_data is None:
                json_data = block.get("json")
            elif block_type == "tool_use":
                tool_calls.append(ToolInvocation(
                    id=block.get("id") or "",
                    name=block.get("name") or "",
                    arguments=json.dumps(block.get("input") or {}),
                ))

        for use in message.get("tool_uses") or []:
            tool_calls.append(ToolInvocation(
                id=use.get("id") or "",
                name=use.get("name") or "",
                arguments=use.get("arguments") or "{}",
            ))

        stop_reason = message.get("stop_reason") or ""
        text = "".join(texts) if texts else None
        refusal = None
        if stop_reason == "refusal":
            refusal, text = text or "the model declined to respond", None
        choice = Choice(
            finish_reason=STOP_REASONS.get(stop_reason, stop_reason),
            text=text,
            refusal=refusal,
            json_data=json_data,
            tool_calls=tool_calls,
        )

        usage = message.get("usage") or data.get("usage") or {}
        return ResponseEnvelope(
            id=data.get("id") or message.get("id") or "",
            model=data.get("model") or message.get("model") or "",
            choices=[choice],
            usage=Usage(
                input_tokens=usage.get("input_tokens") or 0,
                output_tokens=usage.get("output_tokens") or 0,
            ),
        )
