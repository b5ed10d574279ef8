"""Chat message model, free-form JSON values and revision history."""

from .json_value import JSONValue, find_by_suffix
from .models import (
    ChatMessage,
    ChatResponseChunk,
    MessageFragment,
    MessageRole,
    ToolCall,
    ToolFunction,
)
from .revisions import archive_current, can_show_next, can_show_previous, show_next, show_previous
from .timestamps import now_timestamp, parse_timestamp

__all__ = [
    "ChatMessage",
    "ChatResponseChunk",
    "JSONValue",
    "MessageFragment",
    "MessageRole",
    "ToolCall",
    "ToolFunction",
    "archive_current",
    "can_show_next",
    "can_show_previous",
    "find_by_suffix",
    "now_timestamp",
    "parse_timestamp",
    "show_next",
    "show_previous",
]
