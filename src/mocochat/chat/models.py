"""Data models for chat messages and streamed response chunks.

``ChatMessage`` is the live, mutable record of one conversation turn. While a
response is streaming, only the fixed/pending buffer pairs are authoritative;
``content`` and ``thinking`` are written once the stream ends. A message that
has been retried keeps every earlier complete version in ``revisions``.
"""

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .json_value import JSONValue

# Fields sent back to the server as conversation history
API_FIELDS = {
    "role",
    "content",
    "thinking",
    "images",
    "tool_calls",
    "tool_name",
    "created_at",
    "total_duration",
    "eval_count",
    "eval_duration",
}


class MessageRole(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolFunction(BaseModel):
    """Function details of a tool call."""

    name: str
    arguments: dict[str, JSONValue] = Field(default_factory=dict)


class ToolCall(BaseModel):
    """A tool call requested by the model (passed through unchanged)."""

    function: ToolFunction


class ChatMessage(BaseModel):
    """One turn of a conversation, including its streaming and revision state."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: MessageRole = Field(description="Author of the message")
    content: str = Field(default="", description="Finalized body once streaming ends")

    # Streaming buffers: fixed only grows by append, pending is replaced
    fixed_content: str = ""
    pending_content: str = ""

    thinking: str | None = Field(default=None, description="Finalized reasoning text")
    fixed_thinking: str = ""
    pending_thinking: str = ""
    is_thinking_completed: bool = False

    is_streaming: bool = False
    is_stopped: bool = Field(default=False, description="Ended by user cancellation")

    created_at: str | None = None
    total_duration: int | None = Field(default=None, description="Nanoseconds")
    eval_count: int | None = Field(default=None, description="Generated tokens")
    eval_duration: int | None = Field(default=None, description="Nanoseconds")

    revisions: list["ChatMessage"] = Field(
        default_factory=list,
        description="Archived complete versions, oldest first"
    )
    current_revision_index: int = Field(
        default=0,
        ge=0,
        description="Index into revisions; len(revisions) means the latest version"
    )
    original_content: str | None = None
    latest_content: str | None = None

    # Latest finalized state, restored when navigating back to the newest version
    final_thinking: str | None = None
    final_is_thinking_completed: bool = False
    final_created_at: str | None = None
    final_total_duration: int | None = None
    final_eval_count: int | None = None
    final_eval_duration: int | None = None
    final_is_stopped: bool = False

    # API passthrough
    tool_calls: list[ToolCall] | None = None
    tool_name: str | None = None
    images: list[str] | None = Field(default=None, description="Base64 encoded images")

    @property
    def display_content(self) -> str:
        """Main text as it should currently be shown."""
        if self.is_streaming:
            return self.fixed_content + self.pending_content
        return self.content

    @property
    def display_thinking(self) -> str | None:
        """Reasoning text as it should currently be shown, None if there is none."""
        if self.is_streaming:
            return (self.fixed_thinking + self.pending_thinking) or None
        return self.thinking

    @property
    def is_viewing_latest(self) -> bool:
        return self.current_revision_index == len(self.revisions)

    @property
    def version_count(self) -> int:
        """Archived revisions plus the current version."""
        return len(self.revisions) + 1

    @property
    def tokens_per_second(self) -> float | None:
        """Generation speed derived from the final chunk's counters."""
        if self.eval_count is None or self.eval_duration is None or self.eval_duration <= 0:
            return None
        return self.eval_count / (self.eval_duration / 1_000_000_000)

    def reset_for_stream(self, created_at: str | None = None) -> None:
        """Clear content, buffers, metrics and flags ahead of a new generation."""
        self.content = ""
        self.thinking = None
        self.fixed_content = ""
        self.pending_content = ""
        self.fixed_thinking = ""
        self.pending_thinking = ""
        self.latest_content = ""
        self.is_streaming = True
        self.is_stopped = False
        self.is_thinking_completed = False
        self.created_at = created_at
        self.total_duration = None
        self.eval_count = None
        self.eval_duration = None

    def snapshot_final(self) -> None:
        """Record the just-finalized state as the latest version."""
        self.latest_content = self.content
        if self.original_content is None and not self.revisions:
            self.original_content = self.content
        self.final_thinking = self.thinking
        self.final_is_thinking_completed = self.is_thinking_completed
        self.final_created_at = self.created_at
        self.final_total_duration = self.total_duration
        self.final_eval_count = self.eval_count
        self.final_eval_duration = self.eval_duration
        self.final_is_stopped = self.is_stopped

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize as a message of the ``/api/chat`` request body."""
        return self.model_dump(mode="json", include=API_FIELDS, exclude_none=True)


class MessageFragment(BaseModel):
    """The message delta carried by one response chunk."""

    model_config = ConfigDict(extra="ignore")

    role: MessageRole = MessageRole.ASSISTANT
    content: str = ""
    thinking: str | None = None
    images: list[str] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_name: str | None = None


class ChatResponseChunk(BaseModel):
    """One decoded JSON object of a ``/api/chat`` response.

    Counters are cumulative and only meaningful on the terminal chunk
    (``done`` is true).
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    model: str = ""
    created_at: str | None = None
    message: MessageFragment | None = None
    done: bool = False
    done_reason: str | None = None
    total_duration: int | None = None
    load_duration: int | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None
    eval_count: int | None = None
    eval_duration: int | None = None
