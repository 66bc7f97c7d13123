"""Exception hierarchy for the conversation engine."""


class AirchatError(Exception):
    """Base exception for all Airchat errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class AuthError(AirchatError):
    """No usable credential for a provider."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(
            message or f"No API key configured for {provider}",
            hint=f"Add a {provider} API key in settings and try again.",
        )
        self.provider = provider


class HTTPError(AirchatError):
    """A provider answered with a non-200 status, or reported an error in-stream."""

    def __init__(self, status: int, message: str, *, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.message}"


class DecodeError(AirchatError):
    """A single stream frame could not be decoded."""


class NetworkError(AirchatError):
    """Transport failure or timeout while talking to a provider."""


class ToolError(AirchatError):
    """Base class for tool-call failures."""


class ToolArgumentError(ToolError):
    """Tool-call arguments could not be interpreted."""


class ToolExecutionError(ToolError):
    """The tool executor failed."""


class TurnInProgressError(AirchatError):
    """A turn was submitted while another one is still running."""


def describe_error(exc: BaseException) -> str:
    """Return the user-facing description of a turn-ending error."""
    if isinstance(exc, AuthError):
        return f"⚠️ {exc.message}. {exc.hint}"
    if isinstance(exc, HTTPError):
        if exc.status in (401, 403):
            return f"⚠️ The provider rejected the API key (HTTP {exc.status}): {exc.message}"
        if exc.status == 429:
            return f"⚠️ Rate limit reached, please wait a moment and retry (HTTP 429): {exc.message}"
        return f"⚠️ Request failed (HTTP {exc.status}): {exc.message}"
    if isinstance(exc, NetworkError):
        return f"⚠️ Network error: {exc.message}. Check your connection and try again."
    if isinstance(exc, DecodeError):
        return f"⚠️ Could not read the model response: {exc.message}"
    if isinstance(exc, ToolArgumentError):
        return f"⚠️ Could not understand the tool arguments: {exc.message}"
    if isinstance(exc, ToolExecutionError):
        return f"⚠️ Tool failed: {exc.message}"
    return f"⚠️ Unexpected error: {exc}"
