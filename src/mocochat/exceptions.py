"""Error taxonomy for the chat engine.

Every failure that reaches the session's top level is a ``ChatError`` so a UI
only needs one ``except`` clause and one attribute (``user_message``) to
report it. Per-line decode failures never show up here; they are logged by
the stream parser and the stream continues.
"""


class ChatError(Exception):
    """Base class for chat engine errors."""

    @property
    def user_message(self) -> str:
        """Text suitable for showing to the user."""
        return f"Chat API Error: {self}"


class ChatRequestError(ChatError):
    """The outgoing request could not be built or serialized."""

    def __init__(self, message: str):
        super().__init__(f"Invalid chat request: {message}")


class ChatTransportError(ChatError):
    """Connection refused, timeout, DNS failure, dropped connection."""

    def __init__(self, message: str):
        super().__init__(f"Network error: {message}")


class ChatHTTPStatusError(ChatError):
    """The server answered the initiating request with a non-200 status."""

    def __init__(self, status_code: int, detail: str = ""):
        msg = f"HTTP Status Code {status_code}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.status_code = status_code
        self.detail = detail


class OllamaServerError(ChatError):
    """The server reported an error object inside the response body."""

    def __init__(self, message: str):
        super().__init__(f"Server error: {message}")
        self.server_message = message


class ModelNotSelectedError(ChatError):
    """A chat turn was requested without a model."""

    def __init__(self) -> None:
        super().__init__("Please select a model first.")

    @property
    def user_message(self) -> str:
        return str(self)


class ModelNotSupportedError(ChatError):
    """The selected model cannot chat (e.g. embedding-only models)."""

    def __init__(self, model: str, reason: str = "embedding-only models cannot be used for chat"):
        super().__init__(f"{model}: {reason}")
        self.model = model

    @property
    def user_message(self) -> str:
        return f"This model cannot be used ({self})"


class RetryNotAllowedError(ChatError):
    """Retry was requested for a message that cannot be retried right now."""

    @property
    def user_message(self) -> str:
        return f"Retry failed: {self}"


class RevisionNavigationError(ChatError):
    """Revision navigation past either end, or while streaming."""

    @property
    def user_message(self) -> str:
        return str(self)
