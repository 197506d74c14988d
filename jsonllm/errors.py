from __future__ import annotations


class LLMError(RuntimeError):
    """Base error for jsonllm. `kind` is stable and safe to branch on."""

    kind = "LLMError"


class ConfigError(LLMError):
    kind = "ConfigError"


# ---------------------------------------------------------------------------
# Request tier
# ---------------------------------------------------------------------------

class InvalidSchema(LLMError, ValueError):
    kind = "InvalidSchema"


class RequestError(LLMError, ValueError):
    kind = "RequestError"


class EmptyMessages(RequestError):
    kind = "EmptyMessages"

    def __init__(self) -> None:
        super().__init__("at least one message is required")


class ModeMismatch(RequestError):
    kind = "ModeMismatch"


# ---------------------------------------------------------------------------
# Transport tier
# ---------------------------------------------------------------------------

class TransportError(LLMError):
    """HTTP round trip failed. `body` is the raw response body, never discarded."""

    kind = "TransportError"

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class MalformedResponse(TransportError):
    kind = "MalformedResponse"


class RequestCancelled(TransportError):
    kind = "RequestCancelled"

    def __init__(self) -> None:
        super().__init__("request cancelled before it was sent")


# ---------------------------------------------------------------------------
# Semantic tier
# ---------------------------------------------------------------------------

class DecodeError(LLMError):
    kind = "DecodeError"


class EmptyContent(DecodeError):
    kind = "EmptyContent"


class ParseError(DecodeError):
    kind = "ParseError"


class TokenLimitExceeded(DecodeError):
    kind = "TokenLimitExceeded"

    def __init__(self) -> None:
        super().__init__("the response was truncated due to token limit")


class ContentFiltered(DecodeError):
    kind = "ContentFiltered"

    def __init__(self) -> None:
        super().__init__("the response was filtered due to content restrictions")


class ModelRefusal(DecodeError):
    kind = "ModelRefusal"

    def __init__(self, message: str) -> None:
        super().__init__(f"model refused: {message}")
        self.message = message


class UnexpectedFinishReason(DecodeError):
    kind = "UnexpectedFinishReason"

    def __init__(self, reason: str) -> None:
        super().__init__(f"unexpected finish reason: {reason!r}")
        self.reason = reason


class NoToolCalls(DecodeError):
    kind = "NoToolCalls"

    def __init__(self) -> None:
        super().__init__("no tool calls in the response")


class ToolNotFound(DecodeError):
    kind = "ToolNotFound"

    def __init__(self, name: str) -> None:
        super().__init__(f"tool call with name {name!r} not found")
        self.name = name
