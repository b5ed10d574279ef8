"""Newline-delimited JSON parsing for streamed chat responses.

The transport hands over byte fragments with arbitrary boundaries: a fragment
may hold several JSON lines, part of one, or end in the middle of a UTF-8
sequence. ``NDJSONLineBuffer`` turns those fragments into complete lines,
carrying the unfinished tail over to the next call, and ``ChatStreamParser``
decodes each line into a ``ChatResponseChunk``.

One malformed line never ends the stream: it is logged and skipped.
"""

import codecs
import json
import logging

from pydantic import ValidationError

from ..chat.models import ChatResponseChunk
from ..exceptions import OllamaServerError

logger = logging.getLogger(__name__)


class NDJSONLineBuffer:
    """Reassembles complete lines from arbitrarily split fragments."""

    def __init__(self, encoding: str = "utf-8"):
        self._carry = ""
        self._decoder_factory = codecs.getincrementaldecoder(encoding)
        self._decoder = self._decoder_factory()

    @property
    def carry(self) -> str:
        """Incomplete trailing text waiting for the rest of its line."""
        return self._carry

    def feed(self, fragment: bytes | str) -> list[str]:
        """Add a fragment and return the lines it completed.

        Args:
            fragment: Raw bytes from the transport, or already-decoded text

        Returns:
            Complete, non-empty lines in arrival order (without the newline)
        """
        if isinstance(fragment, bytes):
            try:
                text = self._decoder.decode(fragment)
            except UnicodeDecodeError as e:
                # Only this delivery is lost; later deliveries start clean
                logger.warning("Dropping undecodable fragment of %d bytes: %s", len(fragment), e)
                self._decoder = self._decoder_factory()
                return []
        else:
            text = fragment

        buffer = self._carry + text
        lines = buffer.split("\n")
        # The last segment is complete only if the buffer ended with a newline,
        # in which case it is the empty string after the final separator
        self._carry = lines.pop()
        return [line for line in lines if line.strip()]

    def flush(self) -> list[str]:
        """Return the trailing partial line at end of body and reset."""
        rest = self._carry
        self._carry = ""
        self._decoder = self._decoder_factory()
        return [rest] if rest.strip() else []


def decode_chunk(line: str) -> ChatResponseChunk | None:
    """Decode one JSON line into a chunk.

    Every field of a chunk is optional, so an error object would validate
    as an empty chunk; it is recognised before validation.

    Args:
        line: A complete line of the response body

    Returns:
        The decoded chunk, or None if the line is not a valid chunk

    Raises:
        OllamaServerError: If the line is an error object from the server
    """
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning("Chat response JSON decode error: %s - Line: %s", e.msg, line)
        return None
    if isinstance(payload, dict) and "error" in payload:
        raise OllamaServerError(str(payload["error"]))
    try:
        return ChatResponseChunk.model_validate(payload)
    except ValidationError as e:
        logger.warning("Chat response JSON decode error: %s - Line: %s", e.errors()[0]["msg"], line)
        return None


class ChatStreamParser:
    """Turns a sequence of body fragments into decoded chunks, in order."""

    def __init__(self) -> None:
        self._lines = NDJSONLineBuffer()

    def feed(self, fragment: bytes | str) -> list[ChatResponseChunk]:
        return self._decode_all(self._lines.feed(fragment))

    def finish(self) -> list[ChatResponseChunk]:
        """Decode whatever is left once the body has ended."""
        return self._decode_all(self._lines.flush())

    @staticmethod
    def _decode_all(lines: list[str]) -> list[ChatResponseChunk]:
        chunks = []
        for line in lines:
            chunk = decode_chunk(line)
            if chunk is not None:
                chunks.append(chunk)
        return chunks
