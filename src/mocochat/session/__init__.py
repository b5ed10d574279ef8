"""Conversation state and chat turn orchestration."""

from .events import SessionEvent, SessionEventType, SessionListener
from .orchestrator import ChatSession
from .settings import (
    DEFAULT_CONTEXT_WINDOW,
    DEFAULT_TEMPERATURE,
    FALLBACK_MAX_CONTEXT_WINDOW,
    MIN_CONTEXT_WINDOW,
    ChatSettings,
)

__all__ = [
    "ChatSession",
    "ChatSettings",
    "DEFAULT_CONTEXT_WINDOW",
    "DEFAULT_TEMPERATURE",
    "FALLBACK_MAX_CONTEXT_WINDOW",
    "MIN_CONTEXT_WINDOW",
    "SessionEvent",
    "SessionEventType",
    "SessionListener",
]
