from typing import Any

from ..config import ClientConfig
from .base import ChatTransport
from .client import OllamaClient


def create_ollama_client(config: ClientConfig | None = None, **client_kwargs: Any) -> ChatTransport:
    """Create a chat transport for an Ollama-compatible server.

    This factory hides the instantiation logic of the HTTP client, so callers
    only deal with the explicit configuration object.

    Args:
        config: Connection settings (defaults: localhost:11434, 30 s timeout)
        **client_kwargs: Extra httpx.AsyncClient arguments (e.g. ``transport``)

    Returns:
        Initialized transport; close it (or use ``async with``) when done

    Examples:
        >>> client = create_ollama_client(ClientConfig(host="192.168.1.50:11434"))
    """
    config = config or ClientConfig()
    return OllamaClient(host=config.host, timeout=config.timeout, **client_kwargs)
