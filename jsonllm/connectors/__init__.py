from __future__ import annotations

import importlib

import jsonllm.config as config_mod
from jsonllm.config import ClientConfig
from jsonllm.connectors.base import LLMConnector
from jsonllm.transport import HttpTransport

CONNECTOR_MAP: dict[str, str] = {
    "openai": "jsonllm.connectors.openai.OpenAIConnector",
    "anthropic": "jsonllm.connectors.anthropic.AnthropicConnector",
}


def get_connector(
    name: str,
    config: ClientConfig | None = None,
    transport: HttpTransport | None = None,
) -> LLMConnector:
    """Factory: resolve connector name to class and instantiate.

    Without an explicit config, settings come from ~/.jsonllm/config.toml and
    the provider's API key environment variable.
    """
    if name not in CONNECTOR_MAP:
        raise ValueError(f"Unknown connector '{name}'. Available: {list(CONNECTOR_MAP)}")
    module_path, class_name = CONNECTOR_MAP[name].rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    if config is None:
        config = config_mod.client_config(config_mod.load(), name)
    return cls(config, transport=transport)
