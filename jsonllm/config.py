from __future__ import annotations

import copy
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from jsonllm.errors import ConfigError

CONFIG_DIR = Path("~/.jsonllm").expanduser()
CONFIG_FILE = CONFIG_DIR / "config.toml"

PROVIDERS = ("openai", "anthropic")

DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider": "openai",
    },
    "openai": {
        "endpoint": "https://api.openai.com/v1/chat/completions",
        "model": "gpt-4o-2024-08-06",
        "api_key_env": "OPENAI_API_KEY",
        "auth_header": "Authorization",
        "auth_scheme": "Bearer",
        "timeout_s": 60.0,
    },
    "anthropic": {
        "endpoint": "https://api.anthropic.com/v1/messages",
        "model": "claude-3-opus-20240229",
        "api_key_env": "ANTHROPIC_API_KEY",
        "auth_header": "x-api-key",
        "version_header": "anthropic-version",
        "api_version": "2023-06-01",
        "max_tokens": 4096,
        "timeout_s": 60.0,
    },
}


class ClientConfig(BaseModel):
    """Immutable per-client settings; safe to share across threads."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    endpoint: str
    model: str
    max_tokens: int | None = None
    temperature: float | None = None
    timeout_s: float = 60.0
    auth_header: str = "Authorization"
    auth_scheme: str | None = None  # e.g. "Bearer"; None sends the bare key
    version_header: str | None = None
    api_version: str | None = None

    def with_model(self, model: str) -> ClientConfig:
        return self.model_copy(update={"model": model})


def load() -> dict[str, Any]:
    """Load config from ~/.jsonllm/config.toml, merging with defaults."""
    config = copy.deepcopy(DEFAULTS)
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            on_disk = tomllib.load(f)
        config = _deep_merge(config, on_disk)
    return config


def save(config: dict[str, Any]) -> None:
    """Save config dict to ~/.jsonllm/config.toml (manual TOML serialization)."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    lines = _dict_to_toml(config)
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def client_config(config: dict[str, Any], provider: str | None = None) -> ClientConfig:
    """Build a ClientConfig for `provider`, reading its API key from the environment."""
    provider = provider or config["llm"]["provider"]
    if provider not in PROVIDERS:
        raise ConfigError(f"Unknown provider '{provider}'. Available: {list(PROVIDERS)}")

    section = dict(config[provider])
    env_var = section.pop("api_key_env")
    api_key = os.getenv(env_var, "").strip()
    if not api_key:
        raise ConfigError(f"Missing env var {env_var} for {provider} API key")
    return ClientConfig(api_key=api_key, **section)


def _deep_merge(base: dict, override: dict) -> dict:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _dict_to_toml(d: dict[str, Any], prefix: str = "") -> list[str]:
    """Minimal TOML serializer for one level of sections with scalar values."""
    lines: list[str] = []
    sections: list[tuple[str, dict]] = []

    for k, v in d.items():
        if isinstance(v, dict):
            sections.append((k, v))
        elif v is not None:
            lines.append(f"{k} = {_toml_value(v)}")

    for section_key, section_val in sections:
        header = f"[{section_key}]" if not prefix else f"[{prefix}.{section_key}]"
        lines.append("")
        lines.append(header)
        for sk, sv in section_val.items():
            if sv is not None:
                lines.append(f"{sk} = {_toml_value(sv)}")

    return lines


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        return str(v)
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise ValueError(f"Unsupported TOML value type: {type(v)}")
