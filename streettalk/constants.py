from __future__ import annotations


APP_NAME: str = "streettalk"

POSTS_COLLECTION: str = "posts"
COMMENTS_COLLECTION: str = "comments"
USERS_COLLECTION: str = "users"
REPORTS_COLLECTION: str = "reports"

DEFAULT_FEED_PAGE_SIZE: int = 20
DEFAULT_COMMENTS_PAGE_SIZE: int = 30

# User-facing, short, user-safe messages (no stack traces)
MSG_LOAD_FAILED: str = "Could not load content. Please try again."
MSG_SAVE_FAILED: str = "Could not save. Please try again."
MSG_DELETE_FAILED: str = "Could not delete. Please try again."
MSG_REPORT_FAILED: str = "Failed to submit report. Please try again."
MSG_RATE_LIMITED: str = "Rate limit exceeded"
