from __future__ import annotations


class StreetTalkError(Exception):
    """Base error. Message is user-safe unless stated otherwise."""

    retryable: bool = True
    retry_delay_sec: float = 1.0


class ValidationError(StreetTalkError):
    retryable = False


class NotFoundError(StreetTalkError):
    retryable = False


class RateLimitExceeded(StreetTalkError):
    retry_delay_sec = 5.0

    def __init__(self, message: str, *, time_until_reset_ms: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.time_until_reset_ms = time_until_reset_ms
        if time_until_reset_ms is not None:
            self.retry_delay_sec = time_until_reset_ms / 1000


class StorageFailure(StreetTalkError):
    """Durable key-value storage I/O failed. Internal, never shown to the user."""


class QueryFailure(StreetTalkError):
    retry_delay_sec = 2.0


class BlockedListLookupFailure(StreetTalkError):
    """Internal, never shown to the user."""


class CorruptValue(StorageFailure):
    """Storage answered, but the stored value cannot be decoded."""
