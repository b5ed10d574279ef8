from .base import ChatTransport
from .client import OllamaClient
from .factory import create_ollama_client
from .models import (
    ChatRequest,
    ChatRequestOptions,
    ModelDetails,
    ModelList,
    ModelSummary,
    ToolDefinition,
)

__all__ = [
    "ChatRequest",
    "ChatRequestOptions",
    "ChatTransport",
    "ModelDetails",
    "ModelList",
    "ModelSummary",
    "OllamaClient",
    "ToolDefinition",
    "create_ollama_client",
]
