"""Client factory functions for CLI.

Centralizes creation of the Ollama client from command-line options and
environment variables. Hides configuration details from command
implementations.
"""

import typer
from pydantic import ValidationError
from rich.console import Console

from ..config import load_config
from ..ollama import ChatTransport, create_ollama_client

# Default console for output
_console = Console()


def get_client(
    host: str | None = None,
    timeout: str | None = None,
    console: Console | None = None,
) -> ChatTransport:
    """Create an Ollama client from options and environment variables.

    Args:
        host: Server host; overrides OLLAMA_HOST
        timeout: Timeout option; overrides MOCOCHAT_API_TIMEOUT
        console: Optional Rich console for output

    Returns:
        Ollama client instance

    Raises:
        SystemExit: If the configuration is invalid

    Environment variables:
        OLLAMA_HOST: Server host (default: localhost:11434)
        MOCOCHAT_API_TIMEOUT: seconds30, minutes1, minutes5 or unlimited (default: seconds30)
    """
    con = console or _console
    try:
        config = load_config(host=host, timeout=timeout)
    except (ValueError, ValidationError) as e:
        con.print(f"[red]Error: invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)
    return create_ollama_client(config)
