"""
Mocochat: a streaming chat engine for the Ollama /api/chat endpoint.

Each module hides one design decision: the wire format (ollama), the
reassembly and display of streamed text (streaming), the message and
revision model (chat) and the lifecycle of a chat turn (session).
"""

__version__ = "0.1.0"

from .chat import ChatMessage, MessageRole
from .config import APITimeoutOption, ClientConfig, load_config
from .exceptions import ChatError
from .ollama import ChatTransport, OllamaClient, create_ollama_client
from .session import ChatSession, ChatSettings, SessionEvent, SessionEventType
from .streaming import ThinkingOption

__all__ = [
    "APITimeoutOption",
    "ChatError",
    "ChatMessage",
    "ChatSession",
    "ChatSettings",
    "ChatTransport",
    "ClientConfig",
    "MessageRole",
    "OllamaClient",
    "SessionEvent",
    "SessionEventType",
    "ThinkingOption",
    "create_ollama_client",
    "load_config",
]
