"""
Exception hierarchy for the chat session.

Every failure of a request is normalized into one of these types before it
reaches the orchestrator, so the UI only has to distinguish the terminal
configuration problem from the recoverable remote ones.
"""
from typing import Optional


class ChatError(Exception):
    """Base exception for all chat errors."""


class ConfigurationError(ChatError):
    """A required setting (the API key) is missing.  Terminal for the session."""


class RemoteError(ChatError):
    """The request was sent but failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedResponseError(RemoteError):
    """A response arrived but did not have the expected shape."""
