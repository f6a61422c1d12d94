from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from streettalk.constants import DEFAULT_COMMENTS_PAGE_SIZE, DEFAULT_FEED_PAGE_SIZE
from streettalk.domain.models import ActionType, RateLimitPolicy


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis (durable key-value storage for rate limit windows)
    redis_dsn: Optional[str] = Field(default=None, alias="REDIS_DSN")
    rate_limit_key_ttl_sec: Optional[int] = Field(default=None, gt=0, alias="RATE_LIMIT_KEY_TTL_SEC")

    # Firestore
    firestore_project: Optional[str] = Field(default=None, alias="FIRESTORE_PROJECT")
    google_credentials_path: Optional[str] = Field(default=None, alias="GOOGLE_APPLICATION_CREDENTIALS")

    # Rate limiting
    post_rate_limit_max: int = Field(default=10, gt=0, alias="POST_RATE_LIMIT_MAX")
    post_rate_limit_window_sec: int = Field(default=600, gt=0, alias="POST_RATE_LIMIT_WINDOW_SEC")
    comment_rate_limit_max: int = Field(default=20, gt=0, alias="COMMENT_RATE_LIMIT_MAX")
    comment_rate_limit_window_sec: int = Field(default=300, gt=0, alias="COMMENT_RATE_LIMIT_WINDOW_SEC")

    # Paging
    feed_page_size: int = Field(default=DEFAULT_FEED_PAGE_SIZE, gt=0, alias="FEED_PAGE_SIZE")
    comments_page_size: int = Field(default=DEFAULT_COMMENTS_PAGE_SIZE, gt=0, alias="COMMENTS_PAGE_SIZE")

    # Content
    strict_content_filter: bool = Field(default=False, alias="STRICT_CONTENT_FILTER")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "TRACE"}
        if level not in allowed:
            raise ValueError(f"Invalid LOG_LEVEL={value!r}. Allowed: {sorted(allowed)}")
        return level

    def rate_limit_policies(self) -> dict[ActionType, RateLimitPolicy]:
        return {
            ActionType.POST_CREATION: RateLimitPolicy(
                max_actions=self.post_rate_limit_max,
                window_ms=self.post_rate_limit_window_sec * 1000,
                storage_key_prefix="posts",
            ),
            ActionType.COMMENT_CREATION: RateLimitPolicy(
                max_actions=self.comment_rate_limit_max,
                window_ms=self.comment_rate_limit_window_sec * 1000,
                storage_key_prefix="comments",
            ),
        }


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()
