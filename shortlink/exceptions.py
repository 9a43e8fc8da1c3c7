"""
Custom Exceptions

Error taxonomy for the short link service.

Only InvalidInputError and NotFoundError are meant for API consumers.
DependencyUnavailable is raised when the durable store cannot be reached;
cache failures never raise, they are absorbed by each component.
ConstraintViolation is reconciled by re-reading the winning record and only
escapes when that is impossible.
"""

__all__ = [
    "ShortLinkError",
    "InvalidInputError",
    "InvalidShortKey",
    "InvalidSymbol",
    "NotFoundError",
    "UnknownShortKey",
    "DependencyUnavailable",
    "StoreUnavailable",
    "ConstraintViolation",
    "DuplicateLinkError",
    "SequenceCollision",
    "RateLimitExceeded",
]


class ShortLinkError(Exception):
    """Base exception for the short link service."""
    pass


class InvalidInputError(ShortLinkError):
    """Raised for malformed input. Never retried."""
    pass


class InvalidShortKey(InvalidInputError):
    """Raised when a short key cannot be decoded into a sequence number."""

    def __init__(self, short_key: str, reason: str = "Invalid short key"):
        self.short_key = short_key
        self.reason = reason
        super().__init__(f"{reason}: {short_key!r}")


class InvalidSymbol(ValueError):
    """Raised by the codec when a string contains a symbol outside the alphabet."""

    def __init__(self, value: str, symbol: str | None = None):
        self.value = value
        self.symbol = symbol
        if symbol is None:
            super().__init__(f"Cannot decode {value!r}")
        else:
            super().__init__(f"Symbol {symbol!r} is not part of the alphabet in {value!r}")


class NotFoundError(ShortLinkError):
    """Raised when a requested resource does not exist."""
    pass


class UnknownShortKey(NotFoundError):
    """Raised when a short key is not found in the durable store."""

    def __init__(self, short_key: str):
        self.short_key = short_key
        super().__init__(f"Short key '{short_key}' not found")


class DependencyUnavailable(ShortLinkError):
    """Raised when a required dependency is unreachable."""

    def __init__(self, service_name: str, original_error: Exception | None = None):
        self.service_name = service_name
        self.original_error = original_error
        detail = f": {original_error}" if original_error is not None else ""
        super().__init__(f"Service '{service_name}' is unavailable{detail}")


class StoreUnavailable(DependencyUnavailable):
    """Raised when the durable store cannot serve a request."""

    def __init__(self, original_error: Exception | None = None):
        super().__init__("database", original_error)


class ConstraintViolation(ShortLinkError):
    """Raised when a write collides with a unique constraint."""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(message)


class DuplicateLinkError(ConstraintViolation):
    """Raised when a link insert violates the fingerprint or sequence constraints."""

    def __init__(self, fingerprint: str, sequence_id: int | None, original_error: Exception | None = None):
        self.fingerprint = fingerprint
        self.sequence_id = sequence_id
        super().__init__(
            f"Link insert rejected for fingerprint {fingerprint[:12]}... (sequence={sequence_id})",
            original_error,
        )


class SequenceCollision(ConstraintViolation):
    """Raised when a sequence number is already taken by a different link."""

    def __init__(self, sequence_id: int | None, original_error: Exception | None = None):
        self.sequence_id = sequence_id
        super().__init__(f"Sequence {sequence_id} is already in use", original_error)


class RateLimitExceeded(ShortLinkError):
    """Raised when a client exhausted its creation budget for the current window."""

    def __init__(self, max_requests: int, window_seconds: int, retry_after_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded: {max_requests} requests per {window_seconds} seconds. "
            f"Try again in {retry_after_seconds} seconds."
        )
