from __future__ import annotations

from .models import (
    ActionType,
    Document,
    Page,
    PaginationCursor,
    QuerySpec,
    RateLimitDecision,
    RateLimitPolicy,
    RateLimitStatus,
    RateLimitWindow,
    ReportReason,
    UserProfile,
    Verdict,
)
from .errors import (
    BlockedListLookupFailure,
    CorruptValue,
    NotFoundError,
    QueryFailure,
    RateLimitExceeded,
    StorageFailure,
    StreetTalkError,
    ValidationError,
)

__all__ = [
    "ActionType",
    "Document",
    "Page",
    "PaginationCursor",
    "QuerySpec",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimitStatus",
    "RateLimitWindow",
    "ReportReason",
    "UserProfile",
    "Verdict",
    "BlockedListLookupFailure",
    "CorruptValue",
    "NotFoundError",
    "QueryFailure",
    "RateLimitExceeded",
    "StorageFailure",
    "StreetTalkError",
    "ValidationError",
]
