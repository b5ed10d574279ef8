"""Chat session: conversation state and the lifecycle of each chat turn.

A ``ChatSession`` owns the ordered message list of one conversation. Each
turn (a new message or a retry) runs as its own asyncio task that opens the
chat stream, routes every chunk through the thinking splitter and the display
buffer, and finally marks the assistant message as finished, stopped or
failed.

All mutations happen on the event loop thread, so the session is the single
writer of its messages. Observers are notified through listeners registered
with ``add_listener``.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from functools import partial

import httpx

from ..chat.models import ChatMessage, ChatResponseChunk, MessageRole
from ..chat.revisions import archive_current, show_next, show_previous
from ..chat.timestamps import now_timestamp, parse_timestamp
from ..exceptions import (
    ChatError,
    ChatTransportError,
    ModelNotSelectedError,
    ModelNotSupportedError,
    RetryNotAllowedError,
    RevisionNavigationError,
)
from ..ollama.base import ChatTransport
from ..ollama.models import ModelDetails
from ..streaming.display_buffer import DisplayBuffer
from ..streaming.splitter import ThinkingMode, ThinkingOption, ThinkingSplitter
from .events import SessionEvent, SessionEventType, SessionListener
from .settings import DEFAULT_CONTEXT_WINDOW, ChatSettings

logger = logging.getLogger(__name__)


class ChatSession:
    """One conversation with a chat model.

    Usage:
        async with create_ollama_client(config) as client:
            session = ChatSession(client, ChatSettings(model="llama3.2"))
            session.add_listener(render)
            session.send_message("Hello")
            await session.wait_idle()
    """

    def __init__(
        self,
        transport: ChatTransport,
        settings: ChatSettings | None = None,
        buffer_factory: Callable[[], DisplayBuffer] = DisplayBuffer,
    ):
        """Initialize the session.

        Args:
            transport: Backend that performs chat requests
            settings: Chat settings (model, streaming, options)
            buffer_factory: Creates the display buffer of each turn
        """
        self._transport = transport
        self.settings = settings or ChatSettings()
        self._buffer_factory = buffer_factory
        self._messages: list[ChatMessage] = []
        self._listeners: list[SessionListener] = []
        self._current_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self.error: ChatError | None = None

    # Observation

    @property
    def messages(self) -> list[ChatMessage]:
        """Snapshot of the ordered message list (the messages themselves are live)."""
        return list(self._messages)

    @property
    def is_streaming(self) -> bool:
        return any(m.is_streaming for m in self._messages)

    @property
    def current_task(self) -> asyncio.Task | None:
        """The most recently started turn, until it ends or is cancelled."""
        return self._current_task

    def get_message(self, message_id: str) -> ChatMessage:
        """Look up a message by id.

        Raises:
            KeyError: If no message has that id
        """
        for message in self._messages:
            if message.id == message_id:
                return message
        raise KeyError(message_id)

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        self._listeners.remove(listener)

    def _emit(
        self,
        event_type: SessionEventType,
        message: ChatMessage | None = None,
        error: ChatError | None = None,
    ) -> None:
        event = SessionEvent(
            type=event_type,
            message_id=message.id if message else None,
            error=error.user_message if error else None,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Listener errors never reach the turn
                logger.exception("Session listener failed on %s", event_type.value)

    # Commands

    def send_message(self, text: str) -> asyncio.Task | None:
        """Append a user message and start streaming the assistant's answer.

        Args:
            text: User input; blank input is ignored

        Returns:
            The turn task, or None if nothing was sent

        Raises:
            ModelNotSelectedError: If no model is selected
        """
        if not text.strip():
            return None
        if not self.settings.model:
            raise ModelNotSelectedError()

        self._messages.append(ChatMessage(role=MessageRole.USER, content=text, created_at=now_timestamp()))
        history = list(self._messages)
        placeholder = self._new_placeholder()
        self._messages.append(placeholder)
        self._emit(SessionEventType.MESSAGES_CHANGED, placeholder)
        return self._start_turn(placeholder, history)

    def retry(self, message_id: str, content: str | None = None) -> asyncio.Task:
        """Generate a message again.

        Retrying the last assistant message archives its current version as a
        revision and streams a new one into the same message. Retrying the
        most recent user message (optionally with edited ``content``) re-sends
        it as if newly typed, dropping the answers given to it.

        Args:
            message_id: Message to retry
            content: Replacement text for a user message

        Returns:
            The turn task

        Raises:
            KeyError: If the message does not exist
            RetryNotAllowedError: If the message cannot be retried now
            ModelNotSelectedError: If no model is selected
        """
        message = self.get_message(message_id)
        if self.is_streaming:
            raise RetryNotAllowedError("a response is still streaming")
        if not self.settings.model:
            raise ModelNotSelectedError()

        if message.role == MessageRole.USER:
            return self._retry_user_message(message, content)
        if message.role == MessageRole.ASSISTANT:
            return self._retry_assistant_message(message)
        raise RetryNotAllowedError(f"{message.role.value} messages cannot be retried")

    def _retry_user_message(self, message: ChatMessage, content: str | None) -> asyncio.Task:
        last_user = next((m for m in reversed(self._messages) if m.role == MessageRole.USER), None)
        if last_user is not message:
            raise RetryNotAllowedError("only the most recent user message can be retried")
        if content is not None:
            if not content.strip():
                raise RetryNotAllowedError("message text must not be empty")
            message.content = content

        self._messages.remove(message)
        self._messages.append(message)
        sent_at = parse_timestamp(message.created_at)
        self._messages = [m for m in self._messages if not _answered_after(m, sent_at)]

        history = list(self._messages)
        placeholder = self._new_placeholder()
        self._messages.append(placeholder)
        self._emit(SessionEventType.MESSAGES_CHANGED, placeholder)
        return self._start_turn(placeholder, history)

    def _retry_assistant_message(self, message: ChatMessage) -> asyncio.Task:
        index = self._messages.index(message)
        if index != len(self._messages) - 1:
            raise RetryNotAllowedError("message is not the last one")
        if index == 0 or self._messages[index - 1].role != MessageRole.USER:
            raise RetryNotAllowedError("no user message immediately before the assistant message")

        archive_current(message)
        message.reset_for_stream(created_at=now_timestamp())
        history = self._messages[:index]
        logger.info("Retrying message %s (revision %d)", message.id, len(message.revisions))
        self._emit(SessionEventType.MESSAGE_UPDATED, message)
        return self._start_turn(message, history)

    def cancel(self) -> None:
        """Stop the most recently started turn; a second call is a no-op."""
        task, self._current_task = self._current_task, None
        if task is not None and not task.done():
            logger.info("Chat streaming cancelled.")
            task.cancel()

    def clear_conversation(self) -> None:
        """Discard every message and stop every running turn ("New Chat")."""
        self._messages.clear()
        self.error = None
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._emit(SessionEventType.MESSAGES_CLEARED)

    def show_previous_revision(self, message_id: str) -> ChatMessage:
        """Display the previous archived revision of a message.

        Raises:
            RevisionNavigationError: While streaming or at the oldest revision
        """
        if self.is_streaming:
            raise RevisionNavigationError("Cannot switch revisions while streaming")
        message = self.get_message(message_id)
        show_previous(message)
        self._emit(SessionEventType.MESSAGE_UPDATED, message)
        return message

    def show_next_revision(self, message_id: str) -> ChatMessage:
        """Display the next revision of a message, or its latest version.

        Raises:
            RevisionNavigationError: While streaming or at the latest version
        """
        if self.is_streaming:
            raise RevisionNavigationError("Cannot switch revisions while streaming")
        message = self.get_message(message_id)
        show_next(message)
        self._emit(SessionEventType.MESSAGE_UPDATED, message)
        return message

    async def select_model(self, name: str) -> ModelDetails:
        """Select the chat model and adapt settings to its capabilities.

        Switching to a different model resets the context window to its
        default; re-selecting the current model keeps it.

        Args:
            name: Installed model name

        Returns:
            The model's metadata

        Raises:
            ModelNotSupportedError: If the model only produces embeddings
            ChatError: If the metadata request fails
        """
        details = await self._transport.show_model(name)
        if details.is_embedding_only:
            self.settings.model = None
            self.settings.selected_model_context_length = None
            self.settings.selected_model_capabilities = None
            raise ModelNotSupportedError(name)

        if name != self.settings.model:
            # A different model starts from the default window
            self.settings.context_window = DEFAULT_CONTEXT_WINDOW
        self.settings.model = name
        self.settings.selected_model_context_length = details.context_length
        self.settings.selected_model_capabilities = details.capabilities
        if not details.supports_thinking:
            self.settings.thinking = ThinkingOption.NONE
        return details

    async def wait_idle(self) -> None:
        """Wait until every running turn has ended (however it ended)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Turn lifecycle

    def _new_placeholder(self) -> ChatMessage:
        placeholder = ChatMessage(role=MessageRole.ASSISTANT)
        placeholder.reset_for_stream(created_at=now_timestamp())
        return placeholder

    def _start_turn(self, message: ChatMessage, history: list[ChatMessage]) -> asyncio.Task:
        self.error = None
        task = asyncio.create_task(self._run_turn(message, history), name=f"chat-turn-{message.id}")
        self._current_task = task
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_turn_done, message))
        return task

    def _on_turn_done(self, message: ChatMessage, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._current_task is task:
            self._current_task = None
        if message.is_streaming:
            # Cancelled before the turn got to run
            message.is_streaming = False
            message.is_stopped = True
            message.snapshot_final()
            self._emit(SessionEventType.MESSAGE_FINISHED, message)

    async def _run_turn(self, message: ChatMessage, history: list[ChatMessage]) -> None:
        """Stream one assistant response into ``message``."""
        splitter = ThinkingSplitter(self.settings.thinking_mode)
        buffer = self._buffer_factory()
        first_chunk = True
        try:
            request = self.settings.build_request(history)
            logger.debug("Starting chat turn %s with %d messages", message.id, len(request.messages))
            async with aclosing(self._transport.chat_stream(request)) as stream:
                async for chunk in stream:
                    if chunk.message is not None:
                        split = splitter.feed(chunk.message.content, chunk.message.thinking)
                        buffer.append(split)
                        if chunk.message.tool_calls:
                            message.tool_calls = [*(message.tool_calls or []), *chunk.message.tool_calls]
                        if split.thinking_completed:
                            message.is_thinking_completed = True
                        if first_chunk:
                            if chunk.created_at:
                                message.created_at = chunk.created_at
                            first_chunk = False
                        buffer.flush_to_fixed(message)
                        if buffer.push(message, done=chunk.done):
                            if splitter.mode == ThinkingMode.STRUCTURED:
                                _mark_thinking_completed_by_content(message)
                            self._emit(SessionEventType.MESSAGE_UPDATED, message)
                    if chunk.done:
                        self._finish_completed(message, splitter, buffer, chunk)
                        return
            # Body ended without a terminal chunk
            self._finish_completed(message, splitter, buffer, None)
        except asyncio.CancelledError:
            self._finish_stopped(message, splitter, buffer)
            raise
        except httpx.HTTPError as e:
            self._finish_failed(message, splitter, buffer, ChatTransportError(str(e) or type(e).__name__))
        except ChatError as e:
            self._finish_failed(message, splitter, buffer, e)

    def _drain(self, message: ChatMessage, splitter: ThinkingSplitter, buffer: DisplayBuffer) -> None:
        """Move every remaining piece of text into the fixed buffers."""
        buffer.append(splitter.finish())
        buffer.flush_to_fixed(message, force=True)
        message.content = message.fixed_content
        message.thinking = message.fixed_thinking or None
        message.pending_content = ""
        message.pending_thinking = ""

    def _finish_completed(
        self,
        message: ChatMessage,
        splitter: ThinkingSplitter,
        buffer: DisplayBuffer,
        chunk: ChatResponseChunk | None,
    ) -> None:
        self._drain(message, splitter, buffer)
        if chunk is not None:
            message.total_duration = chunk.total_duration
            message.eval_count = chunk.eval_count
            message.eval_duration = chunk.eval_duration
        message.is_streaming = False
        if message.thinking is not None and not message.is_thinking_completed:
            message.is_thinking_completed = True
        message.snapshot_final()
        logger.debug("Chat turn %s finished: %d chars, eval_count=%s",
                     message.id, len(message.content), message.eval_count)
        self._emit(SessionEventType.MESSAGE_FINISHED, message)

    def _finish_stopped(self, message: ChatMessage, splitter: ThinkingSplitter, buffer: DisplayBuffer) -> None:
        # Partial output is kept
        self._drain(message, splitter, buffer)
        message.is_streaming = False
        message.is_stopped = True
        message.snapshot_final()
        self._emit(SessionEventType.MESSAGE_FINISHED, message)

    def _finish_failed(
        self,
        message: ChatMessage,
        splitter: ThinkingSplitter,
        buffer: DisplayBuffer,
        error: ChatError,
    ) -> None:
        logger.error("Chat streaming error: %s", error)
        self._drain(message, splitter, buffer)
        message.is_streaming = False
        message.is_stopped = False
        message.snapshot_final()
        self.error = error
        self._emit(SessionEventType.MESSAGE_FINISHED, message)
        self._emit(SessionEventType.ERROR, message, error)


def _mark_thinking_completed_by_content(message: ChatMessage) -> None:
    """Reasoning is over once main text follows it (structured mode)."""
    has_thinking = bool(message.fixed_thinking + message.pending_thinking)
    has_content = bool(message.fixed_content + message.pending_content)
    if has_thinking and has_content and not message.is_thinking_completed:
        message.is_thinking_completed = True


def _answered_after(message: ChatMessage, sent_at) -> bool:
    """True for assistant messages created after the given time."""
    if message.role != MessageRole.ASSISTANT or sent_at is None:
        return False
    created = parse_timestamp(message.created_at)
    return created is not None and created > sent_at
