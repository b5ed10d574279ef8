"""Stream processing: line reassembly, thinking split, display buffering."""

from .display_buffer import FLUSH_CHAR_THRESHOLD, THROTTLE_INTERVAL_SECONDS, DisplayBuffer
from .line_parser import ChatStreamParser, NDJSONLineBuffer, decode_chunk
from .splitter import SplitResult, ThinkingMode, ThinkingOption, ThinkingSplitter

__all__ = [
    "ChatStreamParser",
    "DisplayBuffer",
    "FLUSH_CHAR_THRESHOLD",
    "NDJSONLineBuffer",
    "SplitResult",
    "THROTTLE_INTERVAL_SECONDS",
    "ThinkingMode",
    "ThinkingOption",
    "ThinkingSplitter",
    "decode_chunk",
]
