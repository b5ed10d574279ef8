"""Routing of streamed text into reasoning ("thinking") and main content.

Models deliver reasoning in one of two ways:

- STRUCTURED: the server returns it in a separate ``thinking`` field of each
  message fragment (requested with ``think: true``).
- INLINE_TAGS: the model writes it into ``content`` between ``<think>`` and
  ``</think>`` pseudo-tags.

In inline mode a tag may be cut across two fragments (``"A<thi"`` then
``"nk>B"``). The splitter holds back any trailing text that could be the
start of the tag it is waiting for and re-scans it together with the next
fragment, so the result does not depend on where the transport split the
text.
"""

from enum import Enum

from pydantic import BaseModel

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"


class ThinkingOption(str, Enum):
    """User-facing thinking selector sent as the request's ``think`` flag."""

    NONE = "none"  # Flag omitted, model default
    ON = "on"      # think: true, reasoning in a separate field
    OFF = "off"    # think: false

    @property
    def think_flag(self) -> bool | None:
        return {ThinkingOption.NONE: None, ThinkingOption.ON: True, ThinkingOption.OFF: False}[self]


class ThinkingMode(str, Enum):
    """How reasoning text arrives in the stream."""

    STRUCTURED = "structured"
    INLINE_TAGS = "inline_tags"

    @classmethod
    def for_option(cls, option: ThinkingOption) -> "ThinkingMode":
        return cls.STRUCTURED if option == ThinkingOption.ON else cls.INLINE_TAGS


class SplitResult(BaseModel):
    """Text routed out of one fragment."""

    main: str = ""
    thinking: str = ""
    thinking_completed: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.main and not self.thinking


def partial_tag_length(text: str, tag: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``tag``."""
    for size in range(min(len(text), len(tag) - 1), 0, -1):
        if text.endswith(tag[:size]):
            return size
    return 0


class ThinkingSplitter:
    """Stateful splitter for one streamed message."""

    def __init__(self, mode: ThinkingMode = ThinkingMode.INLINE_TAGS):
        self.mode = mode
        self.inside_thinking = False
        self._held = ""

    @property
    def held(self) -> str:
        """Text kept back because it may be the start of a tag."""
        return self._held

    def feed(self, content: str, thinking: str | None = None) -> SplitResult:
        """Route the next fragment.

        Args:
            content: The fragment's main ``content`` text
            thinking: The fragment's ``thinking`` field (structured mode only)

        Returns:
            Text for the main and thinking buffers, and whether a closing
            tag was seen in this fragment
        """
        if self.mode == ThinkingMode.STRUCTURED:
            return SplitResult(main=content, thinking=thinking or "")

        text = self._held + content
        self._held = ""
        main: list[str] = []
        reasoning: list[str] = []
        completed = False

        while text:
            if self.inside_thinking:
                end = text.find(CLOSE_TAG)
                if end >= 0:
                    reasoning.append(text[:end])
                    text = text[end + len(CLOSE_TAG):]
                    self.inside_thinking = False
                    completed = True
                    continue
                keep = partial_tag_length(text, CLOSE_TAG)
                reasoning.append(text[:len(text) - keep])
            else:
                start = text.find(OPEN_TAG)
                if start >= 0:
                    main.append(text[:start])
                    text = text[start + len(OPEN_TAG):]
                    self.inside_thinking = True
                    continue
                keep = partial_tag_length(text, OPEN_TAG)
                main.append(text[:len(text) - keep])
            self._held = text[len(text) - keep:] if keep else ""
            break

        return SplitResult(main="".join(main), thinking="".join(reasoning), thinking_completed=completed)

    def finish(self) -> SplitResult:
        """Release held-back text at the end of the stream.

        A tag that never completed is ordinary text of whichever buffer was
        active.
        """
        held, self._held = self._held, ""
        if self.inside_thinking:
            return SplitResult(thinking=held)
        return SplitResult(main=held)
