from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from jsonllm.errors import LLMError, TransportError
from jsonllm.models import ResponseEnvelope, ToolInvocation

console = Console()

_REDACTED_HEADERS = {"authorization", "x-api-key"}


def render_json(value: Any, title: str | None = None) -> None:
    """Pretty-print any JSON-serializable value."""
    body = JSON.from_data(value)
    if title:
        console.print(Panel(body, title=title, border_style="cyan"))
    else:
        console.print(body)


def render_request(body: dict[str, Any], headers: dict[str, str] | None = None) -> None:
    if headers:
        shown = {
            k: ("***" if k.lower() in _REDACTED_HEADERS else v)
            for k, v in headers.items()
        }
        render_json(shown, title="Request headers")
    render_json(body, title="Request body")


def render_response(envelope: ResponseEnvelope) -> None:
    """Summary of a response envelope: ids, usage, then one row per choice."""
    console.print(
        f"[bold]Response[/bold] id={escape(envelope.id or '-')} "
        f"model={escape(envelope.model or '-')} "
        f"[dim]tokens in/out: {envelope.usage.input_tokens}/{envelope.usage.output_tokens}[/dim]"
    )

    table = Table(show_lines=True)
    table.add_column("#", style="cyan", width=3)
    table.add_column("Finish", style="magenta")
    table.add_column("Content", min_width=30)
    table.add_column("Tool calls", style="green")

    for i, choice in enumerate(envelope.choices):
        if choice.refusal:
            content = f"[red]refusal:[/red] {escape(choice.refusal)}"
        elif choice.json_data is not None:
            content = f"[dim]json:[/dim] {escape(str(choice.json_data))}"
        else:
            content = escape(choice.text or "")
        table.add_row(
            str(i),
            choice.finish_reason or "—",
            content,
            ", ".join(tc.name for tc in choice.tool_calls) or "—",
        )

    console.print(table)


def render_tool_calls(calls: list[ToolInvocation]) -> None:
    table = Table(title="Tool calls", show_lines=True)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Arguments")
    for call in calls:
        table.add_row(escape(call.id), escape(call.name), escape(call.arguments))
    console.print(table)


def render_error(error: LLMError) -> None:
    console.print(f"[red]{escape(error.kind)}:[/red] {escape(str(error))}")
    if isinstance(error, TransportError) and error.body and error.body not in str(error):
        console.print(Panel(escape(error.body), title="Response body", border_style="red"))
