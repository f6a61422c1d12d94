from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from .errors import ValidationError


MAX_POST_LENGTH = 300
MAX_COMMENT_LENGTH = 300
MAX_REPORT_DESCRIPTION_LENGTH = 500

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_ZERO_WIDTH = re.compile(r"[\u200b-\u200f\u202a-\u202e\u2060-\u206f]")
_WHITESPACE = re.compile(r"\s+")

_FLAGGED_WORDS: tuple[str, ...] = ("spam", "scam", "fake", "bot")

_SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(.)\1{4,}"),                         # aaaaa
    re.compile(r"\b\d{10,}\b"),                       # phone numbers
    re.compile(r"[^\w\s]{5,}"),                       # punctuation runs
    re.compile(r"@\w+\.(com|net|org)", re.IGNORECASE),
    re.compile(r"bit\.ly|tinyurl|t\.co", re.IGNORECASE),
)


class Severity(str, Enum):
    CLEAN = "clean"
    MILD = "mild"
    SEVERE = "severe"


@dataclass(frozen=True, slots=True)
class ContentFilterResult:
    flagged_words: list[str] = field(default_factory=list)
    suspicious_patterns: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.flagged_words and not self.suspicious_patterns

    @property
    def severity(self) -> Severity:
        if self.flagged_words:
            return Severity.SEVERE
        if self.suspicious_patterns:
            return Severity.MILD
        return Severity.CLEAN


def filter_content(content: str) -> ContentFilterResult:
    lowered = content.lower()
    flagged = [w for w in _FLAGGED_WORDS if w in lowered]
    suspicious = [p.pattern for p in _SUSPICIOUS_PATTERNS if p.search(content)]
    return ContentFilterResult(flagged_words=flagged, suspicious_patterns=suspicious)


def clean_content(content: str) -> str:
    cleaned = content
    for word in _FLAGGED_WORDS:
        cleaned = re.sub(re.escape(word), "*" * len(word), cleaned, flags=re.IGNORECASE)
    for pattern in _SUSPICIOUS_PATTERNS:
        cleaned = pattern.sub("[removed]", cleaned)
    return cleaned


def validate_content_for_submission(content: str) -> None:
    result = filter_content(content)
    if result.severity is Severity.SEVERE:
        raise ValidationError("Your content contains inappropriate language. Please revise and try again.")
    if result.severity is Severity.MILD:
        raise ValidationError(
            "Your content appears to contain spam or suspicious patterns. Please revise and try again."
        )


def sanitize_user_content(content: str) -> str:
    if not content:
        return ""
    text = _CONTROL_CHARS.sub("", content.strip())
    text = _ZERO_WIDTH.sub("", text)
    return _WHITESPACE.sub(" ", text)


def validate_text(content: str, *, max_length: int, what: str) -> str:
    text = sanitize_user_content(content)
    if not text:
        raise ValidationError(f"{what} cannot be empty.")
    if len(text) > max_length:
        raise ValidationError(f"{what} cannot exceed {max_length} characters.")
    return text


def validate_user_id(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValidationError("User id must be non-empty.")


MIN_USERNAME_LENGTH = 4
MAX_USERNAME_LENGTH = 12

# letters and digits of any script, underscore, hyphen
_USERNAME = re.compile(r"[\w-]+")
_PATH_RESERVED = re.compile(r"[/.#$\[\]]")


def validate_username(username: str) -> str:
    """Check a requested username and return its stored (lowercase) form."""
    if not username:
        raise ValidationError("Username is required.")
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters.")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(f"Username cannot exceed {MAX_USERNAME_LENGTH} characters.")
    if _CONTROL_CHARS.search(username) or _ZERO_WIDTH.search(username):
        raise ValidationError("Username contains invalid control characters.")
    if _PATH_RESERVED.search(username):
        raise ValidationError("Username cannot contain /, ., #, $, [, or ].")
    if not _USERNAME.fullmatch(username):
        raise ValidationError("Username can only contain letters, numbers, underscore and hyphen.")
    return username.lower()
