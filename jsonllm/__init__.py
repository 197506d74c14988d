"""Thin clients for JSON-schema-constrained calls to chat-style LLM HTTP APIs."""

from jsonllm.config import ClientConfig
from jsonllm.connectors import get_connector
from jsonllm.decode import decode_structured, decode_text, get_all_tool_calls, get_tool_call
from jsonllm.models import Message, Mode, RequestOptions, ResponseEnvelope, ToolInvocation
from jsonllm.schema import ObjectSchema, SchemaProperty, ToolDefinition, build_object_schema

__all__ = [
    "ClientConfig",
    "Message",
    "Mode",
    "ObjectSchema",
    "RequestOptions",
    "ResponseEnvelope",
    "SchemaProperty",
    "ToolDefinition",
    "ToolInvocation",
    "build_object_schema",
    "decode_structured",
    "decode_text",
    "get_all_tool_calls",
    "get_connector",
    "get_tool_call",
]
