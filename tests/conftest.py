"""Pytest configuration and shared fixtures."""
import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from mocochat.chat import ChatResponseChunk
from mocochat.ollama import ChatRequest, ChatTransport, ModelDetails, ModelList
from mocochat.session import ChatSession, ChatSettings
from mocochat.streaming import DisplayBuffer


def make_chunk(
    content: str = "",
    thinking: str | None = None,
    done: bool = False,
    created_at: str | None = None,
    **counters: Any
) -> ChatResponseChunk:
    """Build a response chunk the way the server would send it."""
    return ChatResponseChunk(
        model="demo:1b",
        created_at=created_at,
        message={"role": "assistant", "content": content, "thinking": thinking},
        done=done,
        **counters
    )


class FakeTransport(ChatTransport):
    """In-memory transport that plays back a scripted response.

    Script items are yielded in order: a ``ChatResponseChunk`` is delivered,
    an ``asyncio.Event`` is awaited, and an exception is raised.
    """

    base_url = "http://fake:11434"

    def __init__(self, script: list[Any] | None = None, details: ModelDetails | None = None):
        self.scripts: list[list[Any]] = [script] if script is not None else []
        self.details = details or ModelDetails(capabilities=["completion"])
        self.requests: list[ChatRequest] = []
        self.closed = False

    def add_script(self, script: list[Any]) -> None:
        self.scripts.append(script)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponseChunk]:
        self.requests.append(request)
        script = self.scripts.pop(0) if self.scripts else []
        for item in script:
            if isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item

    async def show_model(self, name: str) -> ModelDetails:
        return self.details

    async def list_models(self) -> ModelList:
        return ModelList(models=[{"name": "demo:1b", "size": 1_300_000_000}])

    async def version(self) -> str:
        return "0.6.0"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def hello_script():
    """The canonical two-fragment answer to "Hello"."""
    return [
        make_chunk("Hi", created_at="2024-01-01T00:00:00.123456789Z"),
        make_chunk(" there"),
        make_chunk("", done=True, total_duration=1_000_000_000, eval_count=2, eval_duration=500_000_000),
    ]


@pytest.fixture
def transport():
    """Fake transport with an empty script queue."""
    return FakeTransport()


@pytest.fixture
def session(transport):
    """Session on the fake transport with the push throttle disabled."""
    return ChatSession(
        transport,
        ChatSettings(model="demo:1b"),
        buffer_factory=lambda: DisplayBuffer(throttle_interval=0),
    )
