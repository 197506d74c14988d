from __future__ import annotations

import base64
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jsonllm._json import load_json, validate_into
from jsonllm.schema import ObjectSchema, ToolDefinition

Role = Literal["system", "user", "assistant"]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageUrlPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    url: str  # passed through as-is, never fetched


class ImageBase64Part(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image_base64"] = "image_base64"
    data: str
    media_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


ContentPart = Annotated[
    Union[TextPart, ImageUrlPart, ImageBase64Part],
    Field(discriminator="type"),
]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | tuple[ContentPart, ...]

    @classmethod
    def text(cls, role: Role, text: str) -> Message:
        return cls(role=role, content=text)

    @classmethod
    def with_image_url(cls, url: str, text: str) -> Message:
        return cls(role="user", content=(TextPart(text=text), ImageUrlPart(url=url)))

    @classmethod
    def with_image_bytes(cls, data: bytes, text: str, media_type: str = "image/jpeg") -> Message:
        encoded = base64.b64encode(data).decode("ascii")
        return cls(
            role="user",
            content=(TextPart(text=text), ImageBase64Part(data=encoded, media_type=media_type)),
        )

    def parts(self) -> list[Any]:
        """Content as a list of parts, wrapping plain text in a single TextPart."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)

    def plain_text(self) -> str:
        return "\n".join(p.text for p in self.parts() if isinstance(p, TextPart))


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class Mode(str, Enum):
    STRUCTURED_OUTPUT = "structured_output"
    TOOL_CALL = "tool_call"
    PLAIN_TEXT = "plain_text"


class RequestOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    system: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    schema_name: str = "response"
    strict: bool = False


class RequestEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    messages: tuple[Message, ...]
    mode: Mode
    system: str | None = None
    response_schema: ObjectSchema | None = None
    schema_name: str = "response"
    strict: bool = False
    # False when the schema was folded into the system prompt instead.
    native_structured_output: bool = True
    tools: tuple[ToolDefinition, ...] | None = None
    temperature: float | None = None
    max_tokens: int | None = None

    @model_validator(mode="after")
    def _one_mode_only(self) -> RequestEnvelope:
        if self.response_schema is not None and self.tools is not None:
            raise ValueError("schema and tools are mutually exclusive")
        if self.mode is Mode.STRUCTURED_OUTPUT and self.response_schema is None:
            raise ValueError("structured output mode requires a schema")
        if self.mode is Mode.TOOL_CALL and not self.tools:
            raise ValueError("tool call mode requires at least one tool")
        if self.mode is Mode.PLAIN_TEXT and (self.response_schema is not None or self.tools):
            raise ValueError("plain text mode takes neither schema nor tools")
        return self


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ToolInvocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str = "{}"  # raw JSON, as the model produced it

    def parse_arguments(self, result_type: Any = None) -> Any:
        return validate_into(load_json(self.arguments), result_type)


class Usage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0


class Choice(BaseModel):
    model_config = ConfigDict(frozen=True)

    finish_reason: str  # "stop" | "length" | "content_filter" | "tool_calls" | provider-specific
    text: str | None = None
    json_data: Any = None  # dedicated JSON content block, when the provider returns one
    refusal: str | None = None
    tool_calls: tuple[ToolInvocation, ...] = ()


class ResponseEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    model: str = ""
    choices: tuple[Choice, ...] = ()
    usage: Usage = Field(default_factory=Usage)

    @property
    def tool_calls(self) -> list[ToolInvocation]:
        return [tc for choice in self.choices for tc in choice.tool_calls]
