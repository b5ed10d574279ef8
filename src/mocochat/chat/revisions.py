"""Revision history for retried assistant messages.

Retrying an assistant message archives its latest complete version into
``message.revisions`` before the message is reused for the new generation.
The live message then doubles as a viewer: navigating copies an archived
revision's display fields onto it, and navigating past the last archive
restores the latest version from ``latest_content`` and the ``final_*``
snapshot.

Which field holds "the latest version" depends on what the user is looking
at, so archiving follows a fixed precedence:

- content: ``latest_content`` > ``content`` > fixed + pending buffers
- thinking: ``final_thinking`` > ``thinking`` > fixed + pending buffers > None
"""

from ..exceptions import RevisionNavigationError
from .models import ChatMessage


def latest_candidate_content(message: ChatMessage) -> str:
    """Pick the newest complete main text of a message for archiving."""
    if message.latest_content:
        return message.latest_content
    if message.content:
        return message.content
    return message.fixed_content + message.pending_content


def latest_candidate_thinking(message: ChatMessage) -> str | None:
    """Pick the newest complete reasoning text of a message for archiving."""
    if message.final_thinking:
        return message.final_thinking
    if message.thinking:
        return message.thinking
    buffered = message.fixed_thinking + message.pending_thinking
    return buffered or None


def archive_current(message: ChatMessage) -> ChatMessage:
    """Archive the latest version of a message as a new revision.

    The archive keeps the message's own revision list and pointers, so no
    history is lost even if the archive is later inspected on its own.

    Args:
        message: Message about to be retried (must not be streaming)

    Returns:
        The archived snapshot, already appended to ``message.revisions``
    """
    archived = ChatMessage(
        role=message.role,
        content=latest_candidate_content(message),
        thinking=latest_candidate_thinking(message),
        images=message.images,
        tool_calls=message.tool_calls,
        tool_name=message.tool_name,
        created_at=message.created_at,
        total_duration=_prefer(message.final_total_duration, message.total_duration),
        eval_count=_prefer(message.final_eval_count, message.eval_count),
        eval_duration=_prefer(message.final_eval_duration, message.eval_duration),
        is_streaming=False,
        is_stopped=message.final_is_stopped or message.is_stopped,
        is_thinking_completed=message.final_is_thinking_completed or message.is_thinking_completed,
        revisions=list(message.revisions),
        current_revision_index=message.current_revision_index,
        original_content=message.original_content,
        latest_content=message.latest_content,
        final_thinking=message.final_thinking,
        final_is_thinking_completed=message.final_is_thinking_completed,
        final_created_at=_prefer(message.final_created_at, message.created_at),
        final_total_duration=_prefer(message.final_total_duration, message.total_duration),
        final_eval_count=_prefer(message.final_eval_count, message.eval_count),
        final_eval_duration=_prefer(message.final_eval_duration, message.eval_duration),
        final_is_stopped=message.final_is_stopped or message.is_stopped,
    )
    message.revisions.append(archived)
    message.current_revision_index = len(message.revisions)
    return archived


def can_show_previous(message: ChatMessage) -> bool:
    return not message.is_streaming and message.current_revision_index > 0


def can_show_next(message: ChatMessage) -> bool:
    return not message.is_streaming and message.current_revision_index < len(message.revisions)


def show_previous(message: ChatMessage) -> None:
    """Display the revision before the one currently shown.

    Raises:
        RevisionNavigationError: If already at the oldest revision or streaming
    """
    if not can_show_previous(message):
        raise RevisionNavigationError("No previous revision")
    message.current_revision_index -= 1
    _apply_revision(message, message.revisions[message.current_revision_index])


def show_next(message: ChatMessage) -> None:
    """Display the revision after the one currently shown.

    Stepping onto ``len(revisions)`` restores the latest version.

    Raises:
        RevisionNavigationError: If already at the latest version or streaming
    """
    if not can_show_next(message):
        raise RevisionNavigationError("No next revision")
    message.current_revision_index += 1
    if message.current_revision_index < len(message.revisions):
        _apply_revision(message, message.revisions[message.current_revision_index])
    else:
        _restore_latest(message)


def _apply_revision(message: ChatMessage, revision: ChatMessage) -> None:
    message.content = revision.content
    message.thinking = revision.thinking
    message.is_thinking_completed = revision.is_thinking_completed
    message.created_at = revision.created_at
    message.total_duration = revision.total_duration
    message.eval_count = revision.eval_count
    message.eval_duration = revision.eval_duration
    message.is_stopped = revision.is_stopped
    _sync_buffers(message)


def _restore_latest(message: ChatMessage) -> None:
    message.content = message.latest_content or ""
    message.thinking = message.final_thinking
    message.is_thinking_completed = message.final_is_thinking_completed
    message.created_at = message.final_created_at
    message.total_duration = message.final_total_duration
    message.eval_count = message.final_eval_count
    message.eval_duration = message.final_eval_duration
    message.is_stopped = message.final_is_stopped
    _sync_buffers(message)


def _sync_buffers(message: ChatMessage) -> None:
    message.fixed_content = message.content
    message.pending_content = ""
    message.fixed_thinking = message.thinking or ""
    message.pending_thinking = ""


def _prefer(first, second):
    return first if first is not None else second
