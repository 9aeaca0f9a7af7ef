"""CLI for context-mcp: serve / count-tokens / optimize / chat commands."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from context_mcp.context.models import OptimizationResult
from context_mcp.core.config import AppSettings
from context_mcp.exceptions import ContextMCPError
from context_mcp.providers.tokenizer import create_token_counter
from context_mcp.services.completion_service import MessagesRequest
from context_mcp.services.container import build_container

app = typer.Typer(name="context-mcp", help="Context-optimizing proxy for conversational completion APIs")
console = Console()


def _build_settings(
    model: Optional[str],
    max_tokens: Optional[int],
    shared_cache: bool = True,
) -> AppSettings:
    """Build settings, overriding env defaults with CLI flags."""
    settings = AppSettings()
    if model:
        settings.context.model = model
    if max_tokens:
        settings.context.max_tokens = max_tokens
    if not shared_cache:
        settings.context.enable_shared_cache = False
        settings.rate_limit.enabled = False
    return settings


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


def _load_messages(path: Path) -> list[dict[str, Any]]:
    """Load a message history from a JSON array or a ``{"messages": [...]}`` object."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("messages")
    if isinstance(raw, list):
        return raw
    raise typer.BadParameter(f"Expected a JSON array of messages in {path}")


def _result_table(result: OptimizationResult) -> Table:
    table = Table(title="Context Optimization")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Conversation", result.conversation_id)
    table.add_row("State", result.state.value)
    table.add_row("Messages", f"{result.original_count} -> {result.optimized_count}")
    table.add_row("Total tokens", str(result.total_tokens))
    table.add_row("Summary source", result.summary_source.value if result.summary_source else "-")
    table.add_row("Cache hit", "-" if result.cache_hit is None else str(result.cache_hit))
    table.add_row("Degraded", str(result.degraded))
    table.add_row("Over budget", str(result.over_budget))
    return table


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: CTXMCP_API_HOST)"),
    port: Optional[int] = typer.Option(None, help="Bind port (default: CTXMCP_API_PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
) -> None:
    """Run the HTTP server."""
    import uvicorn

    api = AppSettings().api
    uvicorn.run(
        "context_mcp.api.app:app",
        host=host or api.host,
        port=port or api.port,
        reload=reload,
    )


@app.command("count-tokens")
def count_tokens(
    text: str = typer.Argument(..., help="Text to count"),
    model: Optional[str] = typer.Option(None, "--model", help="Model whose tokenizer to use"),
) -> None:
    """Count the tokens in TEXT."""
    settings = AppSettings()
    counter = create_token_counter(settings.tokenizer)
    console.print(counter.count(text, model or settings.context.model))


@app.command()
def optimize(
    messages_file: Path = typer.Argument(..., help="JSON file with the message history"),
    conversation_id: Optional[str] = typer.Option(None, "--conversation-id"),
    model: Optional[str] = typer.Option(None, "--model", help="Model the budget applies to"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Token budget"),
    output: Optional[Path] = typer.Option(None, help="Output path for the optimized messages"),
    shared_cache: bool = typer.Option(True, "--shared-cache/--no-shared-cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Fit a stored message history to the token budget."""
    _configure_logging(verbose)
    settings = _build_settings(model, max_tokens, shared_cache)
    messages = _load_messages(messages_file)
    console.print(f"Loaded {len(messages)} messages from {messages_file}")

    async def _run() -> OptimizationResult:
        container = build_container(settings)
        try:
            return await container.context_manager.optimize_context(messages, conversation_id)
        finally:
            await container.close()

    try:
        result = asyncio.run(_run())
    except ContextMCPError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(_result_table(result))
    optimized = json.dumps(result.messages, indent=2, ensure_ascii=False)
    if output:
        output.write_text(optimized, encoding="utf-8")
        console.print(f"[green]Optimized messages saved to {output}[/green]")
    else:
        console.print(optimized)


@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model"),
    max_tokens: Optional[int] = typer.Option(1000, "--max-tokens", help="Token budget per request"),
    shared_cache: bool = typer.Option(True, "--shared-cache/--no-shared-cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Interactive conversation showing the optimizer at work. Type "exit" to quit."""
    _configure_logging(verbose)
    settings = _build_settings(model, max_tokens, shared_cache)
    conversation_id = f"test_{int(time.time() * 1000)}"

    console.print("[bold]Context Optimization Chat[/bold]")
    console.print(f"Model: {settings.context.model}")
    console.print(f"Conversation ID: {conversation_id}")
    console.print(f"Max tokens: {settings.context.max_tokens}")
    console.print('Type your messages. Type "exit" to quit.\n')

    async def _loop() -> None:
        container = build_container(settings)
        messages: list[dict[str, Any]] = []
        try:
            while True:
                user_input = await asyncio.to_thread(console.input, "[bold]You:[/bold] ")
                if user_input.strip().lower() == "exit":
                    break
                messages.append({"role": "user", "content": user_input})
                size = container.token_counter.count(json.dumps(messages), settings.context.model)
                console.print(f"Current context size: {size} tokens")

                request = MessagesRequest(
                    model=settings.context.model,
                    messages=messages,
                    max_tokens=settings.context.max_tokens,
                    conversation_id=conversation_id,
                )
                try:
                    response = await container.completion_service.complete(request)
                except ContextMCPError as e:
                    console.print(f"[red]Error:[/red] {e}")
                    messages.pop()
                    continue

                reply = response["content"][0]["text"]
                messages.append({"role": "assistant", "content": reply})
                console.print(f"\n[bold]Assistant:[/bold] {reply}\n")
                console.print_json(data=response["_mcp_metadata"])
        finally:
            await container.close()

    asyncio.run(_loop())
    console.print("Exiting chat.")


if __name__ == "__main__":
    app()
