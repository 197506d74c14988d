from __future__ import annotations

import json
import logging
import mimetypes
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import click
import questionary
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown

import jsonllm.config as config_mod
from jsonllm.connectors import get_connector
from jsonllm.connectors.base import LLMConnector
from jsonllm.decode import get_all_tool_calls
from jsonllm.errors import LLMError
from jsonllm.models import Message, Mode, RequestOptions, ResponseEnvelope
from jsonllm.renderer import render_error, render_json, render_request, render_response, render_tool_calls
from jsonllm.schema import ObjectSchema, ToolDefinition

console = Console()


@click.group()
@click.option("--provider", "-p", type=click.Choice(config_mod.PROVIDERS), default=None,
              help="Provider (default: from config)")
@click.option("--model", "-m", default=None, help="Model id override")
@click.option("--debug", is_flag=True, help="Show request and response envelopes.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, provider: str | None, model: str | None, debug: bool, verbose: bool) -> None:
    """jsonllm: structured LLM calls from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.obj = {"provider": provider, "model": model, "debug": debug}


@main.command("ask")
@click.argument("prompt")
@click.option("--image", "-i", default=None, help="Image URL or local file to attach.")
@click.option("--system", "-s", default=None, help="System prompt.")
@click.pass_context
def cmd_ask(ctx: click.Context, prompt: str, image: str | None, system: str | None) -> None:
    """Plain text completion."""
    with _connector(ctx) as connector:
        response = _complete(ctx, connector, [_user_message(prompt, image)],
                             Mode.PLAIN_TEXT, None, RequestOptions(system=system))
        console.print(Markdown(connector.decode(response, Mode.PLAIN_TEXT)))


@main.command("extract")
@click.argument("prompt")
@click.option("--schema", "schema_file", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON Schema file (root object).")
@click.option("--name", default="response", help="Schema name sent to the provider.")
@click.option("--image", "-i", default=None, help="Image URL or local file to attach.")
@click.option("--system", "-s", default=None, help="System prompt.")
@click.pass_context
def cmd_extract(
    ctx: click.Context,
    prompt: str,
    schema_file: Path,
    name: str,
    image: str | None,
    system: str | None,
) -> None:
    """Structured output constrained to a JSON Schema."""
    with _connector(ctx) as connector:
        schema = ObjectSchema.from_dict(_read_json(schema_file))
        options = RequestOptions(system=system, schema_name=name)
        response = _complete(ctx, connector, [_user_message(prompt, image)],
                             Mode.STRUCTURED_OUTPUT, schema, options)
        render_json(connector.decode(response, Mode.STRUCTURED_OUTPUT))


@main.command("call")
@click.argument("prompt")
@click.option("--tools", "tools_file", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON file with a list of {name, description, parameters, strict?}.")
@click.option("--tool", "tool_name", default=None, help="Only show calls to this tool.")
@click.option("--system", "-s", default=None, help="System prompt.")
@click.pass_context
def cmd_call(
    ctx: click.Context,
    prompt: str,
    tools_file: Path,
    tool_name: str | None,
    system: str | None,
) -> None:
    """Tool/function calling."""
    with _connector(ctx) as connector:
        tools = _load_tools(tools_file)
        response = _complete(ctx, connector, [Message.text("user", prompt)],
                             Mode.TOOL_CALL, tools, RequestOptions(system=system))
        if tool_name:
            calls = get_all_tool_calls(response, tool_name)
        else:
            calls = connector.decode(response, Mode.TOOL_CALL)
        render_tool_calls(calls)


@main.command("config")
def cmd_config() -> None:
    """Interactive configuration wizard."""
    cfg = config_mod.load()

    console.print("[bold cyan]jsonllm configuration[/bold cyan]\n")

    provider = questionary.select(
        "Default provider:",
        choices=list(config_mod.PROVIDERS),
        default=cfg["llm"]["provider"],
    ).ask()
    if provider is None:
        console.print("[yellow]Configuration cancelled.[/yellow]")
        return

    section = cfg[provider]
    model = questionary.text("Model name:", default=section["model"]).ask()
    endpoint = questionary.text("Endpoint:", default=section["endpoint"]).ask()
    key_env = questionary.text("API key environment variable:", default=section["api_key_env"]).ask()

    if model is None or endpoint is None or key_env is None:
        console.print("[yellow]Configuration cancelled.[/yellow]")
        return

    cfg["llm"]["provider"] = provider
    section["model"] = model
    section["endpoint"] = endpoint
    section["api_key_env"] = key_env

    config_mod.save(cfg)
    console.print(f"\n[green]Config saved to {config_mod.CONFIG_FILE}[/green]")
    console.print(f"[dim]Remember to export {key_env} before making calls.[/dim]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _connector(ctx: click.Context) -> Iterator[LLMConnector]:
    """Build the connector from config; print library errors and exit 1."""
    opts = ctx.obj
    try:
        cfg = config_mod.load()
        name = opts["provider"] or cfg["llm"]["provider"]
        client_cfg = config_mod.client_config(cfg, name)
    except LLMError as e:
        render_error(e)
        sys.exit(1)
    if opts["model"]:
        client_cfg = client_cfg.with_model(opts["model"])

    connector = get_connector(name, client_cfg)
    try:
        yield connector
    except LLMError as e:
        render_error(e)
        sys.exit(1)
    finally:
        connector.close()


def _complete(
    ctx: click.Context,
    connector: LLMConnector,
    messages: list[Message],
    mode: Mode,
    payload: Any,
    options: RequestOptions,
) -> ResponseEnvelope:
    envelope = connector.assemble_request(messages, mode, payload, options)
    if ctx.obj["debug"]:
        render_request(connector.to_wire(envelope), connector.auth_headers())
    response = connector.complete(envelope)
    if ctx.obj["debug"]:
        render_response(response)
    return response


def _user_message(prompt: str, image: str | None) -> Message:
    if not image:
        return Message.text("user", prompt)
    if image.startswith(("http://", "https://")):
        return Message.with_image_url(image, prompt)
    path = Path(image).expanduser()
    if not path.is_file():
        raise click.BadParameter(f"no such image file: {image}", param_hint="--image")
    media_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    return Message.with_image_bytes(path.read_bytes(), prompt, media_type=media_type)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}") from e


def _load_tools(path: Path) -> list[ToolDefinition]:
    data = _read_json(path)
    if not isinstance(data, list) or not data:
        raise click.BadParameter(f"{path} must hold a non-empty JSON list of tools")
    return [
        ToolDefinition(
            name=_tool_name(path, item),
            description=item.get("description", ""),
            parameters=ObjectSchema.from_dict(item.get("parameters") or {}),
            strict=bool(item.get("strict", False)),
        )
        for item in data
    ]


def _tool_name(path: Path, item: Any) -> str:
    if not isinstance(item, dict) or not item.get("name"):
        raise click.BadParameter(f"{path}: every tool needs a name")
    return item["name"]
