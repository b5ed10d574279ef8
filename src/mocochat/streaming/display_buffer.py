"""Buffering and throttling of streamed text for display.

Two independent mechanisms keep re-rendering cheap while the text still
feels live:

- Flush to fixed: small deltas accumulate locally and move into the message's
  append-only ``fixed_*`` buffer in larger pieces (on a newline, once 300
  characters are pending, or when forced at the end of the stream). A
  renderer can treat the fixed part as stable (e.g. parse its Markdown once).
- Push throttle: the not-yet-fixed tail is copied into the observable
  ``pending_*`` fields at most once every 80 ms, plus once for the terminal
  chunk.
"""

import time
from collections.abc import Callable

from ..chat.models import ChatMessage
from .splitter import SplitResult

FLUSH_CHAR_THRESHOLD = 300
THROTTLE_INTERVAL_SECONDS = 0.08


class DisplayBuffer:
    """Per-stream accumulators for main and thinking text."""

    def __init__(
        self,
        flush_threshold: int = FLUSH_CHAR_THRESHOLD,
        throttle_interval: float = THROTTLE_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.flush_threshold = flush_threshold
        self.throttle_interval = throttle_interval
        self._clock = clock
        self._last_push = clock()
        self.pending_main = ""
        self.pending_thinking = ""

    def append(self, split: SplitResult) -> None:
        self.pending_main += split.main
        self.pending_thinking += split.thinking

    def _should_flush(self, pending: str, force: bool) -> bool:
        return force or len(pending) >= self.flush_threshold or "\n" in pending

    def flush_to_fixed(self, message: ChatMessage, force: bool = False) -> bool:
        """Move pending text into the message's fixed buffers when due.

        Main and thinking text are judged separately. Flushing an empty
        accumulator leaves the fixed buffer untouched.

        Args:
            message: Message being streamed into
            force: Flush regardless of size (end of stream)

        Returns:
            True if any text moved into a fixed buffer
        """
        moved = False
        if self._should_flush(self.pending_main, force):
            if self.pending_main:
                message.fixed_content += self.pending_main
                moved = True
            self.pending_main = ""
            message.pending_content = ""
        if self._should_flush(self.pending_thinking, force):
            if self.pending_thinking:
                message.fixed_thinking += self.pending_thinking
                moved = True
            self.pending_thinking = ""
            message.pending_thinking = ""
        return moved

    def push(self, message: ChatMessage, done: bool = False) -> bool:
        """Publish the pending tails to the message if the throttle allows.

        Args:
            message: Message being streamed into
            done: The current chunk is the terminal one

        Returns:
            True if the message was updated (observers should re-render)
        """
        now = self._clock()
        if not done and now - self._last_push < self.throttle_interval:
            return False
        message.pending_content = self.pending_main
        message.pending_thinking = self.pending_thinking
        message.latest_content = message.fixed_content + message.pending_content
        self._last_push = now
        return True
