"""Client configuration.

Configuration is an explicit object built once at the boundary (CLI start-up,
tests) and handed to the client factory. Nothing here is global: changing the
timeout means building a new config and a new client.
"""

import os
from enum import Enum

import httpx
from pydantic import BaseModel, Field, field_validator

DEFAULT_HOST = "localhost:11434"

# Connect timeout is bounded even when the read timeout is unlimited
CONNECT_TIMEOUT_SECONDS = 10.0


def base_url_from_host(host: str) -> str:
    """Build the API base URL from a host, defaulting to plain http when no scheme is given."""
    host = host.strip().rstrip("/")
    if host.startswith(("http://", "https://")):
        return host
    return f"http://{host}"


class APITimeoutOption(str, Enum):
    """How long to wait for the server between bytes of a response."""

    SECONDS_30 = "seconds30"
    MINUTES_1 = "minutes1"
    MINUTES_5 = "minutes5"
    UNLIMITED = "unlimited"

    @property
    def request_timeout(self) -> float:
        """Seconds to wait for the next byte (0 means no limit)."""
        return {
            APITimeoutOption.SECONDS_30: 30.0,
            APITimeoutOption.MINUTES_1: 60.0,
            APITimeoutOption.MINUTES_5: 300.0,
            APITimeoutOption.UNLIMITED: 0.0,
        }[self]

    def to_httpx(self) -> httpx.Timeout:
        """Translate to an httpx timeout.

        The read timeout is what matters for a streaming chat: a slow model
        may take a long time before emitting the first token.
        """
        seconds = self.request_timeout
        if seconds == 0:
            return httpx.Timeout(None, connect=CONNECT_TIMEOUT_SECONDS)
        return httpx.Timeout(seconds, connect=min(seconds, CONNECT_TIMEOUT_SECONDS))


class ClientConfig(BaseModel):
    """Connection settings for an Ollama-compatible server."""

    host: str = Field(
        default=DEFAULT_HOST,
        description="Server host, with or without scheme (e.g. 'localhost:11434')"
    )
    timeout: APITimeoutOption = Field(
        default=APITimeoutOption.SECONDS_30,
        description="Idle timeout for API requests"
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Reject blank hosts and strip trailing slashes."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("host must not be empty")
        return v

    @property
    def base_url(self) -> str:
        """Base URL of the API."""
        return base_url_from_host(self.host)


def load_config(
    host: str | None = None,
    timeout: str | APITimeoutOption | None = None,
) -> ClientConfig:
    """Build a ClientConfig from explicit values, falling back to the environment.

    Args:
        host: Server host; overrides OLLAMA_HOST
        timeout: Timeout option name; overrides MOCOCHAT_API_TIMEOUT

    Returns:
        Validated client configuration

    Raises:
        ValueError: If the timeout option or host is invalid

    Environment variables:
        OLLAMA_HOST: Server host (default: localhost:11434)
        MOCOCHAT_API_TIMEOUT: seconds30, minutes1, minutes5 or unlimited
    """
    resolved_host = host or os.getenv("OLLAMA_HOST", DEFAULT_HOST)
    resolved_timeout = timeout or os.getenv("MOCOCHAT_API_TIMEOUT", APITimeoutOption.SECONDS_30.value)
    return ClientConfig(host=resolved_host, timeout=APITimeoutOption(resolved_timeout))
