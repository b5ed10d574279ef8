"""Change notifications emitted by a chat session."""

from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict


class SessionEventType(str, Enum):
    """Kinds of session changes a UI may react to."""

    MESSAGES_CHANGED = "messages_changed"  # Added, removed or reordered
    MESSAGE_UPDATED = "message_updated"    # Streamed text or revision view changed
    MESSAGE_FINISHED = "message_finished"  # Stream completed, stopped or failed
    MESSAGES_CLEARED = "messages_cleared"
    ERROR = "error"


class SessionEvent(BaseModel):
    """A single change notification."""

    model_config = ConfigDict(frozen=True)

    type: SessionEventType
    message_id: str | None = None
    error: str | None = None


SessionListener = Callable[[SessionEvent], None]
