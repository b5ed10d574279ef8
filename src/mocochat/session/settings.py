"""Per-session chat settings and their translation into a chat request."""

from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..chat.models import ChatMessage, MessageRole
from ..exceptions import ChatRequestError, ModelNotSelectedError
from ..ollama.models import ChatRequest, ChatRequestOptions, ToolDefinition
from ..streaming.splitter import ThinkingMode, ThinkingOption

DEFAULT_TEMPERATURE = 0.8
DEFAULT_CONTEXT_WINDOW = 2048
MIN_CONTEXT_WINDOW = 512
# Upper bound when the selected model does not report its context length
FALLBACK_MAX_CONTEXT_WINDOW = 4096


class ChatSettings(BaseModel):
    """What the user chose for the next chat turns.

    Sampling options are only sent when ``use_custom_settings`` is on; each
    of them additionally has its own toggle.
    """

    model: str | None = Field(default=None, description="Selected model name")
    stream: bool = Field(default=True, description="Stream the response")

    use_custom_settings: bool = False
    temperature_enabled: bool = False
    temperature: float = DEFAULT_TEMPERATURE
    context_window_enabled: bool = False
    context_window: int = DEFAULT_CONTEXT_WINDOW
    extra_options: dict[str, Any] = Field(
        default_factory=dict,
        description="Further Ollama options (top_k, seed, ...), sent with custom settings"
    )

    system_prompt_enabled: bool = False
    system_prompt: str = ""

    thinking: ThinkingOption = ThinkingOption.NONE
    tools: list[ToolDefinition] | None = None

    # Filled from /api/show when a model is selected
    selected_model_context_length: int | None = None
    selected_model_capabilities: list[str] | None = None

    @property
    def max_context_window(self) -> int:
        """Largest context window the selected model accepts."""
        return self.selected_model_context_length or FALLBACK_MAX_CONTEXT_WINDOW

    @property
    def thinking_mode(self) -> ThinkingMode:
        return ThinkingMode.for_option(self.thinking)

    def build_options(self) -> ChatRequestOptions | None:
        """Request options, or None when custom settings are off.

        Raises:
            ChatRequestError: If the context window is outside
                ``MIN_CONTEXT_WINDOW..max_context_window``
            ValidationError: If an option value is out of range or unknown
        """
        if not self.use_custom_settings:
            return None
        values: dict[str, Any] = dict(self.extra_options)
        if self.temperature_enabled:
            values["temperature"] = self.temperature
        if self.context_window_enabled:
            num_ctx = int(self.context_window)
            if not MIN_CONTEXT_WINDOW <= num_ctx <= self.max_context_window:
                raise ChatRequestError(
                    f"context window {num_ctx} is outside {MIN_CONTEXT_WINDOW}..{self.max_context_window}"
                )
            values["num_ctx"] = num_ctx
        return ChatRequestOptions(**values)

    def with_system_prompt(self, history: list[ChatMessage]) -> list[ChatMessage]:
        """Prepend the system prompt unless disabled, blank or already present."""
        if not self.system_prompt_enabled or not self.system_prompt.strip():
            return list(history)
        if any(m.role == MessageRole.SYSTEM for m in history):
            return list(history)
        system = ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt)
        return [system, *history]

    def build_request(self, history: list[ChatMessage]) -> ChatRequest:
        """Build the ``/api/chat`` request for a conversation prefix.

        Args:
            history: Messages to send, oldest first

        Returns:
            Validated chat request

        Raises:
            ModelNotSelectedError: If no model is selected
            ChatRequestError: If the settings do not form a valid request
        """
        if not self.model:
            raise ModelNotSelectedError()
        try:
            return ChatRequest(
                model=self.model,
                messages=[m.to_api_dict() for m in self.with_system_prompt(history)],
                stream=self.stream,
                think=self.thinking.think_flag,
                options=self.build_options(),
                tools=self.tools,
            )
        except ValidationError as e:
            raise ChatRequestError(str(e)) from e
