class ChatError(Exception):
    """Base class for failures the relay and the client report to the user."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ChatError):
    """Malformed chat request. Raised before any upstream call is made."""

    status_code = 400


class UpstreamError(ChatError):
    """Non-success status or transport failure from the model API (or the relay)."""

    def __init__(self, status: int, message: str, status_code: int | None = None):
        super().__init__(message, status_code)
        self.status = status


class ParseError(ChatError):
    """A single SSE payload could not be decoded. Recovered locally."""

    def __init__(self, payload: str, reason: str):
        super().__init__(f"Could not decode SSE payload ({reason}): {payload[:200]}")
        self.payload = payload


class EmptyResponseError(ChatError):
    """The reply stream finished without any content."""


class PersistenceError(ChatError):
    """Writing the conversation store failed. Logged only."""
