class ChatError(Exception):
    """Base class for failures surfaced to clients through the response envelope."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    pass


class UnauthorizedError(ChatError):
    pass


class NotFoundError(ChatError):
    pass


class UpstreamError(ChatError):
    pass


class StaleConnectionError(ChatError):
    """Raised when writing to a socket that has already gone away."""
