from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from streettalk.constants import COMMENTS_COLLECTION, POSTS_COLLECTION


T = TypeVar("T")


class ActionType(str, Enum):
    POST_CREATION = "post_creation"
    COMMENT_CREATION = "comment_creation"

    @property
    def noun(self) -> str:
        return "post" if self is ActionType.POST_CREATION else "comment"


class Verdict(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    # storage unreadable; treated as allowed
    INDETERMINATE = "indeterminate"


class ReportReason(str, Enum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    HATE_SPEECH = "hate_speech"
    MISINFORMATION = "misinformation"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _REPORT_LABELS[self]


_REPORT_LABELS: dict[ReportReason, str] = {
    ReportReason.SPAM: "Spam",
    ReportReason.HARASSMENT: "Harassment or Bullying",
    ReportReason.INAPPROPRIATE_CONTENT: "Inappropriate Content",
    ReportReason.HATE_SPEECH: "Hate Speech",
    ReportReason.MISINFORMATION: "False Information",
    ReportReason.OTHER: "Other",
}


class ReportTarget(str, Enum):
    POST = "post"
    COMMENT = "comment"
    USER = "user"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    max_actions: int
    window_ms: int
    storage_key_prefix: str

    def __post_init__(self) -> None:
        if self.max_actions <= 0:
            raise ValueError("max_actions must be positive")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if not self.storage_key_prefix.strip():
            raise ValueError("storage_key_prefix must be non-empty")

    @property
    def window_minutes(self) -> float:
        return self.window_ms / 60_000


class RateLimitWindow(BaseModel):
    """
    Persisted per (user, action type).
    Wire form: {"timestamps": [ms, ...], "lastCleanup": ms}
    """
    model_config = ConfigDict(populate_by_name=True)

    timestamps: list[int] = Field(default_factory=list)
    last_cleanup: int = Field(default=0, alias="lastCleanup")

    def dump(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    verdict: Verdict
    time_until_reset_ms: int | None = None
    message: str | None = None

    @property
    def allowed(self) -> bool:
        return self.verdict is not Verdict.DENIED

    @classmethod
    def admit(cls) -> "RateLimitDecision":
        return cls(verdict=Verdict.ALLOWED)

    @classmethod
    def deny(cls, *, time_until_reset_ms: int, message: str) -> "RateLimitDecision":
        return cls(verdict=Verdict.DENIED, time_until_reset_ms=time_until_reset_ms, message=message)

    @classmethod
    def indeterminate(cls) -> "RateLimitDecision":
        return cls(verdict=Verdict.INDETERMINATE)


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    current: int
    max: int
    window_minutes: float
    time_until_reset_ms: int | None = None

    @property
    def at_limit(self) -> bool:
        return self.current >= self.max

    @property
    def near_limit(self) -> bool:
        return self.current * 100 >= self.max * 80


@dataclass(frozen=True, slots=True)
class Document:
    doc_id: str
    data: dict[str, Any]

    @property
    def author_id(self) -> str | None:
        return self.data.get("userId")

    @property
    def created_at(self) -> Any:
        return self.data.get("createdAt")


@dataclass(frozen=True, slots=True)
class PaginationCursor:
    """
    Opaque resume point: the last raw item of a fetched page.
    `snapshot` is store specific and not compared.
    """
    doc_id: str
    created_at: Any
    snapshot: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    items: list[T]
    cursor: PaginationCursor | None
    # length of the page as returned by the store, before filtering
    raw_count: int

    @property
    def has_more(self) -> bool:
        return self.cursor is not None


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """Ordered source: one collection, optional equality filter, newest first."""
    collection: str
    filter_field: str | None = None
    filter_value: Any = None
    order_by: str = "createdAt"

    @classmethod
    def posts_feed(cls) -> "QuerySpec":
        return cls(collection=POSTS_COLLECTION)

    @classmethod
    def post_comments(cls, post_id: str) -> "QuerySpec":
        return cls(collection=COMMENTS_COLLECTION, filter_field="postId", filter_value=post_id)

    @classmethod
    def user_posts(cls, user_id: str) -> "QuerySpec":
        return cls(collection=POSTS_COLLECTION, filter_field="userId", filter_value=user_id)


@dataclass(frozen=True, slots=True)
class UserProfile:
    uid: str
    username: str
    email: str | None = None
    created_at: Any = None
    blocked_users: tuple[str, ...] = ()

    @classmethod
    def from_data(cls, uid: str, data: dict[str, Any]) -> "UserProfile":
        return cls(
            uid=uid,
            username=data.get("username", ""),
            email=data.get("email"),
            created_at=data.get("createdAt"),
            blocked_users=tuple(data.get("blockedUsers") or ()),
        )
