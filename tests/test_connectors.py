"""End-to-end connector calls against httpx.MockTransport."""
from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

import jsonllm.config as config_mod
from jsonllm.config import ClientConfig
from jsonllm.connectors import get_connector
from jsonllm.connectors.anthropic import AnthropicConnector
from jsonllm.connectors.openai import OpenAIConnector
from jsonllm.decode import get_all_tool_calls, get_tool_call
from jsonllm.errors import (
    ConfigError,
    MalformedResponse,
    ModelRefusal,
    TokenLimitExceeded,
    TransportError,
)
from jsonllm.models import Message, Mode, RequestOptions

USER = [Message.text("user", "What's the weather in Tokyo?")]
TOKYO = '{"location":"Tokyo","temperature":25.5,"unit":"C"}'


class Weather(BaseModel):
    location: str
    temperature: float
    unit: str


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

def test_openai_send_structured(openai_connector, recorder, openai_body, weather_schema):
    recorder.body = openai_body(content=TOKYO)

    result = openai_connector.send_structured(USER, weather_schema, Weather)

    assert result == Weather(location="Tokyo", temperature=25.5, unit="C")
    req = recorder.last
    assert str(req.url) == "https://api.openai.com/v1/chat/completions"
    assert req.headers["authorization"] == "Bearer sk-test"
    assert "anthropic-version" not in req.headers
    assert recorder.last_json["response_format"]["type"] == "json_schema"


def test_openai_refusal(openai_connector, recorder, openai_body, weather_schema):
    recorder.body = openai_body(content=None, refusal="I'm sorry, I can't do that.")
    with pytest.raises(ModelRefusal):
        openai_connector.send_structured(USER, weather_schema, Weather)


def test_openai_tool_calls(openai_connector, recorder, openai_body, weather_tool):
    recorder.body = openai_body(
        content=None,
        finish_reason="tool_calls",
        tool_calls=[
            ("call_1", "get_weather", '{"location": "Tokyo"}'),
            ("call_2", "get_time", "{}"),
            ("call_3", "get_weather", '{"location": "Paris", "unit": "celsius"}'),
        ],
    )

    response = openai_connector.send_tool_call(USER, [weather_tool])

    calls = get_all_tool_calls(response, "get_weather")
    assert [c.id for c in calls] == ["call_1", "call_3"]
    assert calls[1].parse_arguments() == {"location": "Paris", "unit": "celsius"}
    assert response.choices[0].finish_reason == "tool_calls"
    assert recorder.last_json["tools"][0]["function"]["name"] == "get_weather"


def test_openai_plain_text(openai_connector, recorder, openai_body):
    recorder.body = openai_body(content="It is sunny in Tokyo.")
    text = openai_connector.send_plain_text(USER, RequestOptions(max_tokens=50, temperature=0.5))
    assert text == "It is sunny in Tokyo."
    assert recorder.last_json["max_tokens"] == 50
    assert recorder.last_json["temperature"] == 0.5


def test_openai_usage_and_ids(openai_connector, recorder, openai_body):
    recorder.body = openai_body()
    env = openai_connector.complete(openai_connector.assemble_request(USER, Mode.PLAIN_TEXT))
    assert env.id == "chatcmpl-1"
    assert env.model == "gpt-4o-2024-08-06"
    assert (env.usage.input_tokens, env.usage.output_tokens) == (12, 7)


def test_openai_http_error_keeps_body(openai_connector, recorder):
    recorder.status = 401
    recorder.body = {"error": {"message": "Incorrect API key provided"}}
    with pytest.raises(TransportError) as exc_info:
        openai_connector.send_plain_text(USER)
    assert exc_info.value.status == 401
    assert "Incorrect API key" in exc_info.value.body


def test_malformed_top_level_json(openai_connector, recorder):
    recorder.body = b"<html>bad gateway</html>"
    with pytest.raises(MalformedResponse) as exc_info:
        openai_connector.send_plain_text(USER)
    assert exc_info.value.body == "<html>bad gateway</html>"


def test_decode_accepts_raw_bytes(openai_connector, openai_body):
    raw = json.dumps(openai_body(finish_reason="length")).encode()
    with pytest.raises(TokenLimitExceeded):
        openai_connector.decode(raw, Mode.STRUCTURED_OUTPUT, Weather)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

def _messages_body(content, stop_reason="end_turn"):
    return {
        "id": "msg_1",
        "type": "message",
        "role": "assistant",
        "model": "claude-3-opus-20240229",
        "content": content,
        "stop_reason": stop_reason,
        "stop_sequence": None,
        "usage": {"input_tokens": 30, "output_tokens": 12},
    }


def test_anthropic_send_structured(anthropic_connector, recorder, weather_schema):
    recorder.body = _messages_body([{"type": "text", "text": TOKYO}])

    result = anthropic_connector.send_structured(USER, weather_schema, Weather)

    assert result.location == "Tokyo"
    req = recorder.last
    assert str(req.url) == "https://api.anthropic.com/v1/messages"
    assert req.headers["x-api-key"] == "ak-test"
    assert req.headers["anthropic-version"] == "2023-06-01"
    assert "authorization" not in req.headers
    body = recorder.last_json
    assert "response_format" not in body
    assert "valid JSON object" in body["system"]


def test_anthropic_nested_message_envelope_with_json_block(anthropic_connector, recorder, weather_schema):
    recorder.body = {
        "id": "resp_1",
        "type": "response",
        "model": "claude-3-opus-20240229",
        "message": {
            "type": "message",
            "content": [
                {"type": "text", "text": "Here is the weather."},
                {"type": "json", "json": {"location": "Tokyo", "temperature": 25.5, "unit": "C"}},
            ],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 5, "output_tokens": 9},
        },
    }

    result = anthropic_connector.send_structured(USER, weather_schema, Weather)

    assert result == Weather(location="Tokyo", temperature=25.5, unit="C")


def test_anthropic_max_tokens_is_token_limit(anthropic_connector, recorder, weather_schema):
    recorder.body = _messages_body([{"type": "text", "text": '{"location": "To'}], stop_reason="max_tokens")
    with pytest.raises(TokenLimitExceeded):
        anthropic_connector.send_structured(USER, weather_schema, Weather)


def test_anthropic_refusal_keeps_its_text(anthropic_connector, recorder, weather_schema):
    recorder.body = _messages_body([{"type": "text", "text": "I can't help with that."}], stop_reason="refusal")
    with pytest.raises(ModelRefusal) as exc_info:
        anthropic_connector.send_structured(USER, weather_schema, Weather)
    assert exc_info.value.message == "I can't help with that."


def test_anthropic_refusal_without_text(anthropic_connector, recorder):
    recorder.body = _messages_body([], stop_reason="refusal")
    with pytest.raises(ModelRefusal):
        anthropic_connector.send_plain_text(USER)


def test_anthropic_tool_use_blocks(anthropic_connector, recorder, weather_tool):
    recorder.body = _messages_body(
        [
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"location": "Tokyo"}},
        ],
        stop_reason="tool_use",
    )

    response = anthropic_connector.send_tool_call(USER, [weather_tool])

    call = get_tool_call(response, "get_weather")
    assert call.id == "toolu_1"
    assert call.parse_arguments() == {"location": "Tokyo"}
    assert response.choices[0].finish_reason == "tool_calls"
    assert (response.usage.input_tokens, response.usage.output_tokens) == (30, 12)


def test_anthropic_legacy_tool_uses(anthropic_connector, recorder, weather_tool):
    recorder.body = {
        "id": "resp_2",
        "model": "claude-3-opus-20240229",
        "message": {
            "content": [],
            "stop_reason": "tool_use",
            "tool_uses": [
                {"id": "t1", "type": "tool_use", "name": "get_weather", "arguments": '{"location": "Oslo"}'},
            ],
        },
    }
    response = anthropic_connector.send_tool_call(USER, [weather_tool])
    assert get_tool_call(response, "get_weather").parse_arguments() == {"location": "Oslo"}


def test_anthropic_plain_text(anthropic_connector, recorder):
    recorder.body = _messages_body([{"type": "text", "text": "Sunny."}])
    assert anthropic_connector.send_plain_text(USER) == "Sunny."
    assert recorder.last_json["max_tokens"] == 4096


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def test_get_connector_with_explicit_config(transport):
    cfg = ClientConfig(api_key="k", endpoint="https://llm.test", model="m")
    connector = get_connector("anthropic", cfg, transport=transport)
    assert isinstance(connector, AnthropicConnector)
    assert connector.config is cfg


def test_get_connector_from_environment(tmp_config, monkeypatch, transport):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    connector = get_connector("openai", transport=transport)
    assert isinstance(connector, OpenAIConnector)
    assert connector.auth_headers() == {"Authorization": "Bearer sk-env"}


def test_get_connector_missing_key(tmp_config, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ConfigError):
        get_connector("anthropic")


def test_from_api_key_ignores_edited_config(tmp_config, transport):
    config_mod.load()["openai"]["model"] = "changed"
    connector = OpenAIConnector.from_api_key("k", transport=transport)
    assert connector.config.model == "gpt-4o-2024-08-06"


def test_get_connector_unknown():
    with pytest.raises(ValueError):
        get_connector("ollama")


def test_connector_context_manager_returns_itself(transport):
    connector = AnthropicConnector.from_api_key("ak", transport=transport)
    assert isinstance(connector, AnthropicConnector)
    with connector as entered:
        assert entered is connector
