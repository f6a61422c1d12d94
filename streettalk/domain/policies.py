from __future__ import annotations

import math
import time
from typing import Iterable, Mapping

from .models import ActionType, RateLimitPolicy, RateLimitStatus


MINUTE_MS = 60_000

DEFAULT_POLICIES: Mapping[ActionType, RateLimitPolicy] = {
    ActionType.POST_CREATION: RateLimitPolicy(
        max_actions=10,
        window_ms=10 * MINUTE_MS,
        storage_key_prefix="posts",
    ),
    ActionType.COMMENT_CREATION: RateLimitPolicy(
        max_actions=20,
        window_ms=5 * MINUTE_MS,
        storage_key_prefix="comments",
    ),
}


def now_ms() -> int:
    return int(time.time() * 1000)


def storage_key(user_id: str, policy: RateLimitPolicy) -> str:
    return f"rateLimit_{user_id}_{policy.storage_key_prefix}"


def prune(timestamps: Iterable[int], *, now: int, window_ms: int) -> list[int]:
    """
    Keep only timestamps inside (now - window_ms, now].
    An entry exactly window_ms old has already left the window.
    """
    window_start = now - window_ms
    return [t for t in timestamps if window_start < t <= now]


def time_until_reset(timestamps: list[int], *, now: int, window_ms: int) -> int | None:
    # Capacity frees up when the oldest surviving entry ages out.
    if not timestamps:
        return None
    return max(0, min(timestamps) + window_ms - now)


def ceil_minutes(ms: int) -> int:
    return math.ceil(ms / MINUTE_MS)


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def denial_message(action: ActionType, time_until_reset_ms: int) -> str:
    minutes = ceil_minutes(time_until_reset_ms)
    return f"Slow down please. You can {action.noun} again in {_plural(minutes, 'minute')}."


def _format_minutes(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"


def describe_status(action: ActionType, status: RateLimitStatus) -> str:
    if status.at_limit:
        minutes = ceil_minutes(status.time_until_reset_ms or 0)
        return f"Rate limit reached. You can {action.noun} again in {_plural(minutes, 'minute')}."
    return (
        f"{status.current}/{status.max} {action.noun}s used "
        f"({_format_minutes(status.window_minutes)} min window)"
    )
