from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

import jsonllm.config as config_mod
from jsonllm.connectors.anthropic import AnthropicConnector
from jsonllm.connectors.openai import OpenAIConnector
from jsonllm.schema import ToolDefinition, build_object_schema
from jsonllm.transport import HttpTransport

TOKYO_JSON = '{"location":"Tokyo","temperature":25.5,"unit":"C"}'


class Recorder:
    """httpx.MockTransport handler: records requests, replies with a canned body."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status = 200
        self.body: Any = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, (bytes, str)):
            return httpx.Response(self.status, content=self.body)
        return httpx.Response(self.status, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.last.content)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def transport(recorder):
    return HttpTransport(client=httpx.Client(transport=httpx.MockTransport(recorder)))


@pytest.fixture
def openai_connector(transport):
    return OpenAIConnector.from_api_key("sk-test", transport=transport)


@pytest.fixture
def anthropic_connector(transport):
    return AnthropicConnector.from_api_key("ak-test", transport=transport)


@pytest.fixture
def tmp_config(tmp_path, monkeypatch):
    """Point the config file at an empty temp dir."""
    monkeypatch.setattr(config_mod, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(config_mod, "CONFIG_FILE", tmp_path / "config.toml")
    return tmp_path / "config.toml"


@pytest.fixture
def weather_schema():
    return build_object_schema(
        {
            "location": {"type": "string", "description": "Location for weather information"},
            "temperature": {"type": "number", "description": "Current temperature"},
            "unit": {"type": "string", "enum": ["C", "F"]},
        },
        required=["location", "temperature", "unit"],
    )


@pytest.fixture
def weather_tool():
    return ToolDefinition(
        name="get_weather",
        description="Get the current weather for a location",
        parameters=build_object_schema(
            {
                "location": {"type": "string"},
                "unit": {"type": "string", "enum": ["celsius", "fahrenheit"]},
            },
            required=["location"],
        ),
    )


@pytest.fixture
def openai_body():
    """Factory for Chat Completions response bodies."""

    def make(
        content: Any = TOKYO_JSON,
        finish_reason: str = "stop",
        refusal: str | None = None,
        tool_calls: list[tuple[str, str, str]] | None = None,
    ) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": content, "refusal": refusal}
        if tool_calls:
            message["tool_calls"] = [
                {"id": id_, "type": "function", "function": {"name": name, "arguments": args}}
                for id_, name, args in tool_calls
            ]
        return {
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "model": "gpt-4o-2024-08-06",
            "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 7, "total_tokens": 19},
        }

    return make
