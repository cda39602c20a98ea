from typing import Optional


class ParseError(Exception):
    """Library document could not be turned into a Library."""


class UnexpectedEndOfInput(ParseError):
    """Input ended before any top-level dict element was seen."""


class DecodeError(ParseError):
    """Markup is malformed or a node has an unexpected shape."""


class LibraryReadError(ParseError):
    """Underlying read of the library document failed."""


class AuthError(Exception):
    """Supplied credential was rejected by the remote service."""


class RemoteCallError(Exception):
    """A single remote operation failed. Never fatal for the run."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimited(RemoteCallError):
    """Operation was rate limited by provider. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message, status=429)
        self.retry_after_ms = retry_after_ms


class TemporaryFailure(RemoteCallError):
    """Transient provider or network failure. Retrying may succeed."""


class PermanentFailure(RemoteCallError):
    """Non-retriable failure due to invalid input or authorization issues."""
