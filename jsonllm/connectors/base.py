from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Sequence

from pydantic import ValidationError

import jsonllm.decode as decode_mod
from jsonllm.config import DEFAULTS, ClientConfig
from jsonllm.errors import DecodeError, MalformedResponse
from jsonllm.models import Message, Mode, RequestEnvelope, RequestOptions, ResponseEnvelope
from jsonllm.request import assemble_request
from jsonllm.schema import ObjectSchema, ToolDefinition
from jsonllm.transport import HttpTransport

logger = logging.getLogger(__name__)


class LLMConnector(ABC):
    """
    Common client interface. Subclasses describe their provider's capabilities
    and envelope shapes; the call flow itself lives here.
    """

    name: ClassVar[str]
    supports_native_structured_output: ClassVar[bool] = True

    def __init__(self, config: ClientConfig, transport: HttpTransport | None = None) -> None:
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.timeout_s)

    @classmethod
    def from_api_key(
        cls, api_key: str, transport: HttpTransport | None = None, **overrides: Any
    ) -> LLMConnector:
        """Build a connector from the provider defaults plus `overrides`."""
        section = dict(DEFAULTS[cls.name])
        section.pop("api_key_env", None)
        section.update(overrides)
        return cls(ClientConfig(api_key=api_key, **section), transport=transport)

    # ------------------------------------------------------------------
    # Provider capabilities
    # ------------------------------------------------------------------

    def auth_headers(self) -> dict[str, str]:
        cfg = self.config
        value = f"{cfg.auth_scheme} {cfg.api_key}" if cfg.auth_scheme else cfg.api_key
        headers = {cfg.auth_header: value}
        if cfg.version_header and cfg.api_version:
            headers[cfg.version_header] = cfg.api_version
        return headers

    @abstractmethod
    def to_wire(self, envelope: RequestEnvelope) -> dict[str, Any]:
        """Render the provider-specific JSON request body."""
        ...

    @abstractmethod
    def _parse_envelope(self, data: dict[str, Any]) -> ResponseEnvelope:
        ...

    def parse_response(self, raw: bytes) -> ResponseEnvelope:
        body = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"error parsing response: {e}", body=body) from e
        if not isinstance(data, dict):
            raise MalformedResponse("response body is not a JSON object", body=body)
        try:
            return self._parse_envelope(data)
        except (ValidationError, TypeError, AttributeError) as e:
            raise MalformedResponse(f"unexpected response shape: {e}", body=body) from e

    # ------------------------------------------------------------------
    # Call flow: assemble -> send -> decode
    # ------------------------------------------------------------------

    def assemble_request(
        self,
        messages: Sequence[Message],
        mode: Mode,
        payload: ObjectSchema | Sequence[ToolDefinition] | None = None,
        options: RequestOptions | None = None,
    ) -> RequestEnvelope:
        return assemble_request(
            self.config.model,
            messages,
            mode,
            payload,
            options,
            native_structured_output=self.supports_native_structured_output,
            default_max_tokens=self.config.max_tokens,
            default_temperature=self.config.temperature,
        )

    def send(self, envelope: RequestEnvelope, cancel: threading.Event | None = None) -> bytes:
        return self.transport.post(
            self.config.endpoint,
            self.to_wire(envelope),
            self.auth_headers(),
            cancel=cancel,
        )

    def complete(
        self, envelope: RequestEnvelope, cancel: threading.Event | None = None
    ) -> ResponseEnvelope:
        logger.debug("%s %s request, model=%s", self.name, envelope.mode.value, envelope.model)
        return self.parse_response(self.send(envelope, cancel=cancel))

    def decode(
        self, raw: bytes | ResponseEnvelope, mode: Mode, result_type: Any = None
    ) -> Any:
        envelope = raw if isinstance(raw, ResponseEnvelope) else self.parse_response(raw)
        try:
            return decode_mod.decode(envelope, mode, result_type)
        except DecodeError as e:
            logger.warning("%s response could not be decoded: %s", self.name, e)
            raise

    def send_structured(
        self,
        messages: Sequence[Message],
        schema: ObjectSchema,
        result_type: Any = None,
        options: RequestOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> Any:
        envelope = self.assemble_request(messages, Mode.STRUCTURED_OUTPUT, schema, options)
        return self.decode(self.complete(envelope, cancel=cancel), Mode.STRUCTURED_OUTPUT, result_type)

    def send_tool_call(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: RequestOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> ResponseEnvelope:
        """Returns the whole envelope; pick invocations with get_tool_call / get_all_tool_calls."""
        envelope = self.assemble_request(messages, Mode.TOOL_CALL, list(tools), options)
        return self.complete(envelope, cancel=cancel)

    def send_plain_text(
        self,
        messages: Sequence[Message],
        options: RequestOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        envelope = self.assemble_request(messages, Mode.PLAIN_TEXT, None, options)
        return self.decode(self.complete(envelope, cancel=cancel), Mode.PLAIN_TEXT)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> LLMConnector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
