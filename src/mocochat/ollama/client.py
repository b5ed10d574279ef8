import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from ..chat.models import ChatResponseChunk
from ..config import APITimeoutOption, base_url_from_host
from ..exceptions import (
    ChatHTTPStatusError,
    ChatRequestError,
    ChatTransportError,
    OllamaServerError,
)
from ..streaming.line_parser import ChatStreamParser, decode_chunk
from .base import ChatTransport
from .models import ChatRequest, ModelDetails, ModelList

logger = logging.getLogger(__name__)


class OllamaClient(ChatTransport):
    """Ollama HTTP API client.

    Hidden design decisions:
    - httpx AsyncClient setup (base URL, timeouts)
    - Newline-delimited JSON framing of streamed chat responses
    - Mapping of HTTP and transport failures onto ChatError subclasses
    """

    def __init__(
        self,
        host: str = "localhost:11434",
        timeout: APITimeoutOption | httpx.Timeout = APITimeoutOption.SECONDS_30,
        **client_kwargs: Any
    ):
        """Initialize the client.

        Args:
            host: Server host, with or without scheme
            timeout: Timeout option or explicit httpx timeout
            **client_kwargs: Additional kwargs for httpx.AsyncClient
                (e.g. ``transport`` for tests)
        """
        self._base_url = base_url_from_host(host)
        if isinstance(timeout, APITimeoutOption):
            timeout = timeout.to_httpx()
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            **client_kwargs
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponseChunk]:
        """Send ``POST /api/chat`` and yield chunks as they arrive.

        Args:
            request: Chat request; ``stream=False`` yields exactly one chunk

        Yields:
            Decoded chunks in arrival order
        """
        try:
            body = request.to_payload()
        except (PydanticSerializationError, ValueError, TypeError) as e:
            raise ChatRequestError(str(e)) from e

        logger.debug("POST /api/chat model=%s messages=%d stream=%s",
                     request.model, len(request.messages), request.stream)
        try:
            async with self._client.stream("POST", "/api/chat", json=body) as response:
                if response.status_code != 200:
                    raise ChatHTTPStatusError(response.status_code, await self._error_detail(response))

                if not request.stream:
                    raw = await response.aread()
                    chunk = decode_chunk(raw.decode("utf-8", errors="replace"))
                    if chunk is None:
                        raise OllamaServerError("Unreadable chat response")
                    yield chunk
                    return

                parser = ChatStreamParser()
                async for data in response.aiter_bytes():
                    for chunk in parser.feed(data):
                        yield chunk
                for chunk in parser.finish():
                    yield chunk
        except httpx.TransportError as e:
            raise ChatTransportError(str(e) or type(e).__name__) from e

    async def show_model(self, name: str) -> ModelDetails:
        """Fetch ``POST /api/show`` for a model."""
        data = await self._request_json("POST", "/api/show", json={"model": name})
        return self._validate(ModelDetails, data)

    async def list_models(self) -> ModelList:
        """Fetch ``GET /api/tags``."""
        data = await self._request_json("GET", "/api/tags")
        return self._validate(ModelList, data)

    async def version(self) -> str:
        """Fetch ``GET /api/version``."""
        data = await self._request_json("GET", "/api/version")
        if not isinstance(data, dict) or "version" not in data:
            raise OllamaServerError("Unexpected /api/version response")
        return str(data["version"])

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ChatTransportError(str(e) or type(e).__name__) from e
        if response.status_code != 200:
            raise ChatHTTPStatusError(response.status_code, await self._error_detail(response))
        try:
            return response.json()
        except ValueError as e:
            raise OllamaServerError(f"Invalid JSON from {path}") from e

    @staticmethod
    async def _error_detail(response: httpx.Response) -> str:
        """Best-effort error text from a failed response body."""
        raw = await response.aread()
        text = raw.decode("utf-8", errors="replace").strip()
        try:
            payload = response.json()
        except ValueError:
            return text
        if isinstance(payload, dict) and "error" in payload:
            return str(payload["error"])
        return text

    @staticmethod
    def _validate(model: type, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise OllamaServerError(f"Unexpected response shape: {e.error_count()} error(s)") from e

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
