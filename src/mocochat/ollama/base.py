from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from ..chat.models import ChatResponseChunk
from .models import ChatRequest, ModelDetails, ModelList


class ChatTransport(ABC):
    """Abstract base class for chat backends.

    This module hides the design decision of how chat requests reach a
    model server. Implementations must handle:
    - Connection setup and timeouts
    - Request serialization
    - Response framing (newline-delimited JSON when streaming)
    - Mapping transport failures onto ``ChatError`` subclasses

    Supports async context manager protocol for proper resource cleanup:
        async with transport:
            async for chunk in transport.chat_stream(request):
                ...
    """

    @abstractmethod
    def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponseChunk]:
        """Send a chat request and yield response chunks as they arrive.

        Args:
            request: The chat request; ``request.stream`` selects
                newline-delimited streaming or a single response object

        Returns:
            Async iterator of decoded chunks in arrival order. Lines that
            fail to decode are skipped.

        Raises:
            ChatRequestError: The request could not be serialized
            ChatHTTPStatusError: The server answered with a non-200 status
            ChatTransportError: Connection-level failure
            OllamaServerError: The server reported an error in the body
        """

    @abstractmethod
    async def show_model(self, name: str) -> ModelDetails:
        """Fetch metadata for one model (``/api/show``)."""

    @abstractmethod
    async def list_models(self) -> ModelList:
        """List installed models (``/api/tags``)."""

    @abstractmethod
    async def version(self) -> str:
        """Server version string (``/api/version``)."""

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ChatTransport":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            # Suppress harmless cleanup errors from httpx/anyio
            if "Event loop is closed" not in str(e):
                raise
