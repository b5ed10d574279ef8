"""Unit tests for the chat session."""
import asyncio

import httpx
import pytest
from conftest import FakeTransport, make_chunk

from mocochat.chat import ChatResponseChunk, MessageRole
from mocochat.exceptions import (
    ChatRequestError,
    ChatTransportError,
    ModelNotSelectedError,
    ModelNotSupportedError,
    OllamaServerError,
    RetryNotAllowedError,
    RevisionNavigationError,
)
from mocochat.ollama import ModelDetails, OllamaClient
from mocochat.session import DEFAULT_CONTEXT_WINDOW, ChatSession, ChatSettings, SessionEventType
from mocochat.streaming import DisplayBuffer, ThinkingOption


def _done(**counters):
    return make_chunk("", done=True, **counters)


class TestSendMessage:
    """Tests for a complete streamed turn."""

    @pytest.mark.asyncio
    async def test_hello_turn(self, session, transport, hello_script):
        """Test that a streamed answer is assembled with its metrics."""
        transport.add_script(hello_script)

        task = session.send_message("Hello")
        await task

        user, assistant = session.messages
        assert user.role == MessageRole.USER
        assert user.content == "Hello"
        assert assistant.role == MessageRole.ASSISTANT
        assert assistant.content == "Hi there"
        assert assistant.is_streaming is False
        assert assistant.is_stopped is False
        assert assistant.eval_count == 2
        assert assistant.tokens_per_second == pytest.approx(4.0)
        assert assistant.created_at == "2024-01-01T00:00:00.123456789Z"
        assert assistant.latest_content == "Hi there"
        assert assistant.original_content == "Hi there"
        assert session.error is None

    @pytest.mark.asyncio
    async def test_request_carries_history(self, session, transport, hello_script):
        """Test that the request contains the conversation before the placeholder."""
        transport.add_script(hello_script)

        await session.send_message("Hello")

        request = transport.requests[0]
        assert request.model == "demo:1b"
        assert request.stream is True
        assert [m["role"] for m in request.messages] == ["user"]
        assert request.messages[0]["content"] == "Hello"

    @pytest.mark.asyncio
    async def test_events_emitted(self, session, transport, hello_script):
        """Test that observers see the placeholder, updates and the finish."""
        events = []
        session.add_listener(events.append)
        transport.add_script(hello_script)

        await session.send_message("Hello")

        types = [e.type for e in events]
        assert types[0] == SessionEventType.MESSAGES_CHANGED
        assert SessionEventType.MESSAGE_UPDATED in types
        assert types[-1] == SessionEventType.MESSAGE_FINISHED

    def test_blank_message_ignored(self, session):
        """Test that whitespace-only input sends nothing."""
        assert session.send_message("   ") is None
        assert session.messages == []

    def test_model_required(self, transport):
        """Test that sending without a model fails before any message is added."""
        session = ChatSession(transport, ChatSettings())

        with pytest.raises(ModelNotSelectedError) as exc_info:
            session.send_message("Hello")

        assert exc_info.value.user_message == "Please select a model first."
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_stream_without_done_is_finalized(self, session, transport):
        """Test that a body ending early keeps its text without metrics."""
        transport.add_script([make_chunk("abc")])

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.content == "abc"
        assert assistant.is_streaming is False
        assert assistant.eval_count is None
        assert assistant.tokens_per_second is None

    @pytest.mark.asyncio
    async def test_tool_calls_collected(self, session, transport):
        """Test that tool calls in the stream end up on the message."""
        call = {"function": {"name": "get_weather", "arguments": {"city": "Tokyo"}}}
        transport.add_script([
            ChatResponseChunk(message={"role": "assistant", "content": "", "tool_calls": [call]}),
            _done(),
        ])

        await session.send_message("Weather?")

        assistant = session.messages[-1]
        assert assistant.tool_calls is not None
        assert assistant.tool_calls[0].function.name == "get_weather"
        assert assistant.tool_calls[0].function.arguments == {"city": "Tokyo"}

    @pytest.mark.asyncio
    async def test_done_chunk_with_content(self, session, transport):
        """Test that text carried by the terminal chunk is kept."""
        transport.add_script([
            make_chunk("Hi"),
            make_chunk(" there", done=True, eval_count=2, eval_duration=100_000_000),
        ])

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.content == "Hi there"
        assert assistant.latest_content == "Hi there"
        assert assistant.eval_count == 2
        assert assistant.tokens_per_second == pytest.approx(20.0)
        assert assistant.is_streaming is False

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_turn(self, session, transport, hello_script):
        """Test that an observer raising an exception leaves the turn intact."""
        seen = []

        def broken(event):
            raise RuntimeError("observer crashed")

        session.add_listener(broken)
        session.add_listener(seen.append)
        transport.add_script(hello_script)

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.content == "Hi there"
        assert assistant.is_streaming is False
        assert assistant.is_stopped is False
        assert session.error is None
        assert seen[-1].type == SessionEventType.MESSAGE_FINISHED


class TestThinking:
    """Tests for reasoning text in a turn."""

    @pytest.mark.asyncio
    async def test_inline_tags_split_across_chunks(self, session, transport):
        """Test that a tag cut between chunks is still recognised."""
        transport.add_script([
            make_chunk("A<thi"),
            make_chunk("nk>B</think>C"),
            _done(),
        ])

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.content == "AC"
        assert assistant.thinking == "B"
        assert assistant.is_thinking_completed is True

    @pytest.mark.asyncio
    async def test_structured_thinking(self, transport):
        """Test that the thinking field is routed with think enabled."""
        session = ChatSession(
            transport,
            ChatSettings(model="demo:1b", thinking=ThinkingOption.ON),
            buffer_factory=lambda: DisplayBuffer(throttle_interval=0),
        )
        transport.add_script([
            make_chunk("", thinking="Let me see."),
            make_chunk("42"),
            _done(),
        ])

        await session.send_message("Answer?")

        assistant = session.messages[-1]
        assert transport.requests[0].think is True
        assert assistant.thinking == "Let me see."
        assert assistant.content == "42"
        assert assistant.is_thinking_completed is True

    @pytest.mark.asyncio
    async def test_no_thinking_stays_none(self, session, transport, hello_script):
        """Test that a plain answer has no reasoning text."""
        transport.add_script(hello_script)

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.thinking is None
        assert assistant.is_thinking_completed is False


class TestCancel:
    """Tests for user cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_output(self, session, transport):
        """Test that stopping after two chunks keeps their text."""
        gate = asyncio.Event()
        transport.add_script([make_chunk("Hel"), make_chunk("lo"), gate, make_chunk(" world"), _done()])
        seen = asyncio.Event()

        def on_event(event):
            if session.messages and session.messages[-1].display_content == "Hello":
                seen.set()

        session.add_listener(on_event)
        task = session.send_message("Hi")
        await asyncio.wait_for(seen.wait(), timeout=1)

        session.cancel()
        await session.wait_idle()

        assistant = session.messages[-1]
        assert task.cancelled()
        assert assistant.content == "Hello"
        assert assistant.is_stopped is True
        assert assistant.is_streaming is False
        assert assistant.latest_content == "Hello"
        assert session.error is None

    @pytest.mark.asyncio
    async def test_cancel_twice_is_noop(self, session, transport):
        """Test that a second cancel has no effect."""
        transport.add_script([asyncio.Event()])
        session.send_message("Hi")
        await asyncio.sleep(0)

        session.cancel()
        session.cancel()
        await session.wait_idle()

        assert session.current_task is None
        assert session.messages[-1].is_stopped is True


class TestErrors:
    """Tests for failed turns."""

    @pytest.mark.asyncio
    async def test_transport_error_keeps_partial_text(self, session, transport):
        """Test that a mid-stream failure ends the turn but keeps its text."""
        errors = []
        session.add_listener(lambda e: errors.append(e) if e.type == SessionEventType.ERROR else None)
        transport.add_script([make_chunk("partial"), ChatTransportError("connection reset")])

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.content == "partial"
        assert assistant.is_streaming is False
        assert assistant.is_stopped is False
        assert isinstance(session.error, ChatTransportError)
        assert errors[0].error == "Chat API Error: Network error: connection reset"

    @pytest.mark.asyncio
    async def test_httpx_error_is_wrapped(self, session, transport):
        """Test that raw httpx failures surface as transport errors."""
        transport.add_script([httpx.ConnectError("connection refused")])

        await session.send_message("Hello")

        assert isinstance(session.error, ChatTransportError)
        assert session.messages[-1].content == ""

    @pytest.mark.asyncio
    async def test_server_error_before_content(self, session, transport):
        """Test that an error object from the server fails the turn."""
        transport.add_script([OllamaServerError("model 'demo:1b' not found")])

        await session.send_message("Hello")

        assistant = session.messages[-1]
        assert assistant.content == ""
        assert assistant.is_streaming is False
        assert "not found" in session.error.user_message

    @pytest.mark.asyncio
    async def test_next_turn_clears_error(self, session, transport, hello_script):
        """Test that a new turn resets the session error."""
        transport.add_script([OllamaServerError("boom")])
        await session.send_message("Hello")
        assert session.error is not None

        transport.add_script(hello_script)
        await session.send_message("Again")

        assert session.error is None

    @pytest.mark.asyncio
    async def test_oversized_context_window_fails_turn(self, transport):
        """Test that a context window beyond the model's length fails the turn."""
        settings = ChatSettings(
            model="demo:1b",
            use_custom_settings=True,
            context_window_enabled=True,
            context_window=1_000_000,
            selected_model_context_length=4096,
        )
        session = ChatSession(transport, settings)

        await session.send_message("Hello")

        assert isinstance(session.error, ChatRequestError)
        assert session.messages[-1].is_streaming is False
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_error_line_from_server_fails_turn(self):
        """Test that an error object in the response body ends the turn."""
        body = b'{"message":{"role":"assistant","content":"par"}}\n{"error":"model runner crashed"}\n'

        def handler(request):
            return httpx.Response(200, content=body)

        async with OllamaClient(host="localhost:11434", transport=httpx.MockTransport(handler)) as client:
            session = ChatSession(client, ChatSettings(model="demo:1b"))
            await session.send_message("Hello")

        assert session.messages[-1].content == "par"
        assert isinstance(session.error, OllamaServerError)
        assert "model runner crashed" in session.error.user_message


class TestRetry:
    """Tests for retrying messages."""

    @pytest.mark.asyncio
    async def test_retry_assistant_archives_revision(self, session, transport, hello_script):
        """Test that retrying the answer keeps the old one as a revision."""
        transport.add_script(hello_script)
        await session.send_message("Hello")
        assistant = session.messages[-1]

        transport.add_script([make_chunk("Hello again"), _done(eval_count=5, eval_duration=1_000_000_000)])
        await session.retry(assistant.id)

        assert len(session.messages) == 2
        assert assistant.content == "Hello again"
        assert assistant.version_count == 2
        assert assistant.revisions[0].content == "Hi there"
        assert assistant.revisions[0].eval_count == 2
        assert assistant.current_revision_index == 1
        assert assistant.original_content == "Hi there"
        assert [m["role"] for m in transport.requests[1].messages] == ["user"]

    @pytest.mark.asyncio
    async def test_navigate_revisions(self, session, transport, hello_script):
        """Test that previous and next show archived and latest versions."""
        transport.add_script(hello_script)
        await session.send_message("Hello")
        assistant = session.messages[-1]
        transport.add_script([make_chunk("Hello again"), _done(eval_count=5, eval_duration=1_000_000_000)])
        await session.retry(assistant.id)

        session.show_previous_revision(assistant.id)
        assert assistant.content == "Hi there"
        assert assistant.eval_count == 2

        session.show_next_revision(assistant.id)
        assert assistant.content == "Hello again"
        assert assistant.eval_count == 5
        assert assistant.is_viewing_latest

        with pytest.raises(RevisionNavigationError):
            session.show_next_revision(assistant.id)

    @pytest.mark.asyncio
    async def test_retry_refused_while_streaming(self, session, transport, hello_script):
        """Test that retry is rejected during a running stream."""
        transport.add_script(hello_script)
        await session.send_message("Hello")
        gate = asyncio.Event()
        transport.add_script([gate])
        session.send_message("More")
        await asyncio.sleep(0)

        with pytest.raises(RetryNotAllowedError):
            session.retry(session.messages[1].id)
        with pytest.raises(RevisionNavigationError):
            session.show_previous_revision(session.messages[1].id)

        gate.set()
        await session.wait_idle()

    @pytest.mark.asyncio
    async def test_retry_assistant_must_be_last(self, session, transport, hello_script):
        """Test that only the last assistant message can be regenerated."""
        transport.add_script(hello_script)
        await session.send_message("Hello")
        transport.add_script([make_chunk("Second"), _done()])
        await session.send_message("More")

        with pytest.raises(RetryNotAllowedError):
            session.retry(session.messages[1].id)

    @pytest.mark.asyncio
    async def test_retry_edited_user_message(self, session, transport, hello_script):
        """Test that re-sending the latest user message drops its answers."""
        transport.add_script(hello_script)
        await session.send_message("Hello")
        transport.add_script([make_chunk("Old answer", created_at="2999-01-01T00:00:00Z"), _done()])
        await session.send_message("Tell me a joke")
        user = session.messages[2]

        transport.add_script([make_chunk("New answer"), _done()])
        await session.retry(user.id, content="Tell me a pun")

        contents = [m.content for m in session.messages]
        assert contents == ["Hello", "Hi there", "Tell me a pun", "New answer"]
        assert transport.requests[-1].messages[-1]["content"] == "Tell me a pun"

    @pytest.mark.asyncio
    async def test_retry_older_user_message_refused(self, session, transport, hello_script):
        """Test that an earlier user message cannot be re-sent."""
        transport.add_script(hello_script)
        await session.send_message("Hello")
        transport.add_script([make_chunk("Second"), _done()])
        await session.send_message("More")

        with pytest.raises(RetryNotAllowedError):
            session.retry(session.messages[0].id)

    def test_retry_unknown_message(self, session):
        """Test that an unknown id raises KeyError."""
        with pytest.raises(KeyError):
            session.retry("missing")


class TestConversation:
    """Tests for conversation-level commands."""

    @pytest.mark.asyncio
    async def test_clear_conversation_stops_stream(self, session, transport):
        """Test that New Chat empties the list and cancels the turn."""
        events = []
        session.add_listener(events.append)
        transport.add_script([asyncio.Event()])
        task = session.send_message("Hello")
        await asyncio.sleep(0)

        session.clear_conversation()
        await session.wait_idle()

        assert session.messages == []
        assert task.cancelled()
        assert SessionEventType.MESSAGES_CLEARED in [e.type for e in events]

    @pytest.mark.asyncio
    async def test_system_prompt_sent_first(self, transport, hello_script):
        """Test that an enabled system prompt leads the request."""
        settings = ChatSettings(model="demo:1b", system_prompt_enabled=True, system_prompt="Be brief.")
        session = ChatSession(transport, settings)
        transport.add_script(hello_script)

        await session.send_message("Hello")

        roles = [m["role"] for m in transport.requests[0].messages]
        assert roles == ["system", "user"]
        assert all(m.role != MessageRole.SYSTEM for m in session.messages)

    @pytest.mark.asyncio
    async def test_clear_conversation_stops_every_turn(self, session, transport):
        """Test that New Chat cancels overlapping turns, not only the latest."""
        transport.add_script([make_chunk("first"), asyncio.Event()])
        transport.add_script([make_chunk("second"), asyncio.Event()])
        first = session.send_message("One")
        second = session.send_message("Two")
        await asyncio.sleep(0)

        session.clear_conversation()
        await asyncio.wait_for(session.wait_idle(), timeout=1)

        assert first.cancelled()
        assert second.cancelled()
        assert session.messages == []
        assert session.current_task is None


class TestSelectModel:
    """Tests for model selection."""

    @pytest.mark.asyncio
    async def test_select_thinking_model(self):
        """Test that capabilities and context length are recorded."""
        details = ModelDetails(
            capabilities=["completion", "thinking"],
            model_info={"general.architecture": "qwen3", "qwen3.context_length": 40960},
        )
        session = ChatSession(FakeTransport(details=details), ChatSettings(thinking=ThinkingOption.ON))

        await session.select_model("qwen3:8b")

        assert session.settings.model == "qwen3:8b"
        assert session.settings.selected_model_context_length == 40960
        assert session.settings.thinking == ThinkingOption.ON
        assert session.settings.context_window == 2048

    @pytest.mark.asyncio
    async def test_thinking_reset_without_capability(self):
        """Test that thinking is turned off for models that cannot think."""
        session = ChatSession(FakeTransport(), ChatSettings(thinking=ThinkingOption.ON))

        await session.select_model("demo:1b")

        assert session.settings.thinking == ThinkingOption.NONE
        assert session.settings.selected_model_context_length is None

    @pytest.mark.asyncio
    async def test_embedding_model_rejected(self):
        """Test that embedding-only models cannot be selected."""
        details = ModelDetails(capabilities=["embedding"])
        session = ChatSession(FakeTransport(details=details), ChatSettings(model="demo:1b"))

        with pytest.raises(ModelNotSupportedError):
            await session.select_model("nomic-embed-text")

        assert session.settings.model is None

    @pytest.mark.asyncio
    async def test_reselect_keeps_context_window(self):
        """Test that re-selecting the current model keeps a chosen window."""
        details = ModelDetails(capabilities=["completion"], model_info={"llama.context_length": 131072})
        settings = ChatSettings(
            model="demo:1b",
            use_custom_settings=True,
            context_window_enabled=True,
            context_window=8192,
        )
        session = ChatSession(FakeTransport(details=details), settings)

        await session.select_model("demo:1b")

        assert session.settings.context_window == 8192
        assert session.settings.selected_model_context_length == 131072

    @pytest.mark.asyncio
    async def test_switch_model_resets_context_window(self):
        """Test that choosing another model restores the default window."""
        settings = ChatSettings(model="demo:1b", context_window=8192)
        session = ChatSession(FakeTransport(), settings)

        await session.select_model("other:7b")

        assert session.settings.model == "other:7b"
        assert session.settings.context_window == DEFAULT_CONTEXT_WINDOW
