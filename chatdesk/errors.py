"""Error taxonomy shared by the provider gateway, store and controller."""
from __future__ import annotations


class ChatError(Exception):
    """Base class for errors that carry a short user-facing message."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NoModelSelected(ChatError):
    default_message = "Please select a model first."


class AuthError(ChatError):
    default_message = "Invalid API key. Please check your credentials."


class RateLimitError(ChatError):
    default_message = "Rate limit exceeded. Please try again later."


class NetworkError(ChatError):
    default_message = "Network error: the provider could not be reached."


class ProviderError(ChatError):
    """The provider answered, but not with something we can use."""

    default_message = "Invalid response from the provider."


class PersistenceError(ChatError):
    default_message = "Unable to save conversations."


class GenerationInProgressError(ChatError):
    """Raised when a second request targets a conversation that is streaming."""

    default_message = "A response is already being generated for this conversation."


def describe(exc: BaseException) -> str:
    """Return the text shown in a failed assistant turn for ``exc``."""

    if isinstance(exc, ChatError):
        return f"Error: {exc.message}"
    detail = str(exc).strip() or exc.__class__.__name__
    return f"Error: {detail}"
