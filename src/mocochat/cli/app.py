"""Main CLI application using Typer."""
import asyncio
import logging
import signal

import typer
from dotenv import load_dotenv
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .. import __version__
from ..chat import ChatMessage, MessageRole
from ..exceptions import ChatError
from ..session import ChatSession, ChatSettings, SessionEvent
from ..streaming import ThinkingOption
from .providers import get_client

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="mocochat",
    help="Streaming chat client for Ollama servers",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

HOST_OPTION = typer.Option(None, "--host", "-H", help="Ollama host (default: $OLLAMA_HOST or localhost:11434)")
TIMEOUT_OPTION = typer.Option(
    None,
    "--timeout",
    help="Request timeout: seconds30, minutes1, minutes5 or unlimited"
)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_level: str = typer.Option(None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
):
    """Streaming chat client for Ollama servers."""
    if verbose or log_level:
        level = "DEBUG" if verbose else log_level.upper()
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        )


def render_message(message: ChatMessage) -> Group:
    """Render an assistant message: reasoning panel, body and footer."""
    parts = []
    thinking = message.display_thinking
    if thinking:
        title = "Thought" if message.is_thinking_completed else "Thinking..."
        parts.append(Panel(Text(thinking, style="dim"), title=title, border_style="dim"))
    content = message.display_content
    if content:
        parts.append(Markdown(content))
    elif message.is_streaming and not thinking:
        parts.append(Text("...", style="dim"))

    footer = []
    if message.version_count > 1:
        footer.append(f"version {message.current_revision_index + 1}/{message.version_count}")
    if message.is_stopped:
        footer.append("stopped")
    tps = message.tokens_per_second
    if tps is not None and not message.is_streaming:
        footer.append(f"{message.eval_count} tokens, {tps:.1f} tokens/s")
    if footer:
        parts.append(Text(" | ".join(footer), style="dim"))
    return Group(*parts)


def build_settings(
    model: str,
    system: str | None,
    think: ThinkingOption,
    stream: bool,
    temperature: float | None,
    num_ctx: int | None,
) -> ChatSettings:
    """Translate command-line options into chat settings."""
    settings = ChatSettings(model=model, stream=stream, thinking=think)
    if system:
        settings.system_prompt_enabled = True
        settings.system_prompt = system
    if temperature is not None:
        settings.use_custom_settings = True
        settings.temperature_enabled = True
        settings.temperature = temperature
    if num_ctx is not None:
        settings.use_custom_settings = True
        settings.context_window_enabled = True
        settings.context_window = num_ctx
    return settings


async def _prepare_session(session: ChatSession, model: str) -> None:
    """Select the model, keeping the requested thinking option if supported."""
    requested = session.settings.thinking
    details = await session.select_model(model)
    if requested != ThinkingOption.NONE:
        if details.supports_thinking:
            session.settings.thinking = requested
        else:
            console.print(f"[yellow]Warning: {model} does not support thinking, option ignored[/yellow]")


async def _follow_turn(session: ChatSession, task: asyncio.Task | None) -> ChatMessage | None:
    """Render a running turn live until it ends; Ctrl+C stops the stream."""
    if task is None:
        return None
    message = session.messages[-1]
    loop = asyncio.get_running_loop()

    with Live(render_message(message), console=console, refresh_per_second=12) as live:
        def on_event(event: SessionEvent) -> None:
            if event.message_id == message.id:
                live.update(render_message(message))

        session.add_listener(on_event)
        loop.add_signal_handler(signal.SIGINT, session.cancel)
        try:
            await session.wait_idle()
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            session.remove_listener(on_event)
        live.update(render_message(message))

    if session.error is not None:
        console.print(f"[red]{session.error.user_message}[/red]")
    return message


def _last_assistant(session: ChatSession) -> ChatMessage | None:
    return next((m for m in reversed(session.messages) if m.role == MessageRole.ASSISTANT), None)


async def _handle_command(session: ChatSession, command: str) -> bool:
    """Run a slash command. Returns False when the loop should end."""
    if command in ("/quit", "/exit"):
        return False
    if command == "/new":
        session.clear_conversation()
        console.print("[dim]Started a new chat.[/dim]")
        return True

    target = _last_assistant(session)
    if target is None:
        console.print("[yellow]No assistant message yet.[/yellow]")
        return True
    if command == "/retry":
        await _follow_turn(session, session.retry(target.id))
    elif command == "/prev":
        console.print(render_message(session.show_previous_revision(target.id)))
    elif command == "/next":
        console.print(render_message(session.show_next_revision(target.id)))
    else:
        console.print(f"[yellow]Unknown command: {command}[/yellow]")
    return True


@app.command()
def chat(
    model: str = typer.Option(..., "--model", "-m", help="Model to chat with"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
    think: ThinkingOption = typer.Option(ThinkingOption.NONE, "--think", help="Reasoning mode"),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Stream the response"),
    temperature: float = typer.Option(None, "--temperature", "-t", help="Sampling temperature"),
    num_ctx: int = typer.Option(None, "--num-ctx", help="Context window size"),
    host: str = HOST_OPTION,
    timeout: str = TIMEOUT_OPTION,
):
    """Interactive chat with a model."""
    async def _chat():
        client = get_client(host, timeout, console)
        session = ChatSession(client, build_settings(model, system, think, stream, temperature, num_ctx))

        try:
            await _prepare_session(session, model)

            console.print(f"[bold cyan]mocochat[/bold cyan] [dim]({model})[/dim]")
            console.print("[dim]Commands: /retry, /prev, /next, /new, /quit. Ctrl+C stops a response.[/dim]\n")

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ").strip()
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                if not user_input:
                    continue
                try:
                    if user_input.startswith("/"):
                        if not await _handle_command(session, user_input.lower()):
                            console.print("[dim]Goodbye![/dim]")
                            break
                        continue
                    await _follow_turn(session, session.send_message(user_input))
                except ChatError as e:
                    console.print(f"[yellow]{e.user_message}[/yellow]")

        except ChatError as e:
            console.print(f"[red]{e.user_message}[/red]")
            raise typer.Exit(code=1)
        finally:
            session.cancel()
            await session.wait_idle()
            await client.close()

    asyncio.run(_chat())


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Question to ask"),
    model: str = typer.Option(..., "--model", "-m", help="Model to ask"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
    think: ThinkingOption = typer.Option(ThinkingOption.NONE, "--think", help="Reasoning mode"),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Stream the response"),
    temperature: float = typer.Option(None, "--temperature", "-t", help="Sampling temperature"),
    num_ctx: int = typer.Option(None, "--num-ctx", help="Context window size"),
    host: str = HOST_OPTION,
    timeout: str = TIMEOUT_OPTION,
):
    """Ask a single question and print the streamed answer."""
    async def _ask():
        client = get_client(host, timeout, console)
        session = ChatSession(client, build_settings(model, system, think, stream, temperature, num_ctx))

        try:
            await _prepare_session(session, model)
            await _follow_turn(session, session.send_message(prompt))
            if session.error is not None:
                raise typer.Exit(code=1)

        except ChatError as e:
            console.print(f"[red]{e.user_message}[/red]")
            raise typer.Exit(code=1)
        finally:
            await client.close()

    asyncio.run(_ask())


@app.command()
def models(
    host: str = HOST_OPTION,
    timeout: str = TIMEOUT_OPTION,
):
    """List the models installed on the server."""
    async def _models():
        client = get_client(host, timeout, console)
        try:
            model_list = await client.list_models()

            if not model_list.models:
                console.print("[yellow]No models installed[/yellow]")
                return

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Name", style="cyan")
            table.add_column("Family", style="yellow")
            table.add_column("Parameters", width=10)
            table.add_column("Quantization", width=12)
            table.add_column("Size", style="green", justify="right")

            for summary in model_list.models:
                details = summary.details
                table.add_row(
                    summary.name,
                    details.family or "" if details else "",
                    details.parameter_size or "" if details else "",
                    details.quantization_level or "" if details else "",
                    _format_size(summary.size),
                )

            console.print(table)

        except ChatError as e:
            console.print(f"[red]{e.user_message}[/red]")
            raise typer.Exit(code=1)
        finally:
            await client.close()

    asyncio.run(_models())


@app.command()
def show(
    model: str = typer.Argument(..., help="Model name"),
    host: str = HOST_OPTION,
    timeout: str = TIMEOUT_OPTION,
):
    """Show a model's context length and capabilities."""
    async def _show():
        client = get_client(host, timeout, console)
        try:
            details = await client.show_model(model)

            table = Table(show_header=False, box=None)
            table.add_column("Property", style="bold cyan", width=16)
            table.add_column("Value")

            table.add_row("Model", model)
            table.add_row("Context length", str(details.context_length) if details.context_length else "unknown")
            table.add_row("Capabilities", ", ".join(details.capabilities or []) or "unknown")
            table.add_row("Thinking", "yes" if details.supports_thinking else "no")
            if details.is_embedding_only:
                table.add_row("Chat", "[red]no (embedding only)[/red]")

            console.print(table)

        except ChatError as e:
            console.print(f"[red]{e.user_message}[/red]")
            raise typer.Exit(code=1)
        finally:
            await client.close()

    asyncio.run(_show())


@app.command()
def version(
    host: str = HOST_OPTION,
    timeout: str = TIMEOUT_OPTION,
):
    """Print the client and server versions."""
    async def _version():
        client = get_client(host, timeout, console)
        try:
            server_version = await client.version()
            console.print(f"mocochat {__version__}")
            console.print(f"Ollama server {server_version} [dim]({client.base_url})[/dim]")
        except ChatError as e:
            console.print(f"[red]{e.user_message}[/red]")
            raise typer.Exit(code=1)
        finally:
            await client.close()

    asyncio.run(_version())


def _format_size(size: int | None) -> str:
    if size is None:
        return ""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{value:.1f} TB"


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
