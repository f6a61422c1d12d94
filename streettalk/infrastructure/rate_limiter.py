from __future__ import annotations

from typing import Awaitable, Callable, Mapping, TypeVar

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from streettalk.constants import MSG_RATE_LIMITED
from streettalk.domain.errors import CorruptValue, RateLimitExceeded, StorageFailure
from streettalk.domain.models import (
    ActionType,
    RateLimitDecision,
    RateLimitPolicy,
    RateLimitStatus,
    RateLimitWindow,
)
from streettalk.domain.policies import (
    DEFAULT_POLICIES,
    denial_message,
    now_ms,
    prune,
    storage_key,
    time_until_reset,
)
from streettalk.domain.validators import validate_user_id
from streettalk.infrastructure.kv_storage import KeyValueStorage


T = TypeVar("T")

Clock = Callable[[], int]


class RateLimiter:
    """
    Client-side sliding-window rate limiter for write actions.

    One window per (user, action type), persisted in key-value storage.
    Not a security boundary: unreadable storage admits the action and
    lost writes only make the limiter more permissive.
    """

    def __init__(
        self,
        *,
        storage: KeyValueStorage,
        policies: Mapping[ActionType, RateLimitPolicy] = DEFAULT_POLICIES,
        clock: Clock = now_ms,
    ) -> None:
        self._storage = storage
        self._policies = dict(policies)
        self._clock = clock

    def policy(self, action: ActionType) -> RateLimitPolicy:
        try:
            return self._policies[action]
        except KeyError as exc:
            raise ValueError(f"No rate limit policy configured for {action!r}") from exc

    async def check_rate_limit(self, user_id: str, action: ActionType) -> RateLimitDecision:
        validate_user_id(user_id)
        policy = self.policy(action)

        try:
            window = await self._load(storage_key(user_id, policy))
        except StorageFailure:
            logger.opt(exception=True).warning("Rate limit check failed, allowing: user={} action={}", user_id, action.value)
            return RateLimitDecision.indeterminate()

        now = self._clock()
        active = prune(window.timestamps, now=now, window_ms=policy.window_ms)

        if len(active) >= policy.max_actions:
            reset_ms = time_until_reset(active, now=now, window_ms=policy.window_ms) or 0
            return RateLimitDecision.deny(
                time_until_reset_ms=reset_ms,
                message=denial_message(action, reset_ms),
            )
        return RateLimitDecision.admit()

    async def record_action(self, user_id: str, action: ActionType) -> None:
        """Append now to the window. Does not check the limit."""
        validate_user_id(user_id)
        policy = self.policy(action)
        key = storage_key(user_id, policy)
        now = self._clock()

        try:
            window = await self._load(key)
        except CorruptValue:
            logger.opt(exception=True).warning("Rate limit window corrupt, starting fresh: {}", key)
            window = RateLimitWindow()
        except StorageFailure:
            # stored history may still be intact; a blind write would erase it
            logger.opt(exception=True).warning("Rate limit window unreadable, not recorded: {}", key)
            return

        window.timestamps = prune(window.timestamps, now=now, window_ms=policy.window_ms)
        window.timestamps.append(now)
        window.last_cleanup = now

        try:
            await self._storage.set(key, window.dump())
        except StorageFailure:
            logger.opt(exception=True).error("Rate limit record failed: {}", key)

    async def get_rate_limit_status(self, user_id: str, action: ActionType) -> RateLimitStatus:
        # Display only: pruning happens in memory, nothing is written back.
        validate_user_id(user_id)
        policy = self.policy(action)

        try:
            window = await self._load(storage_key(user_id, policy))
        except StorageFailure:
            logger.opt(exception=True).warning("Rate limit status unavailable: user={} action={}", user_id, action.value)
            return RateLimitStatus(current=0, max=policy.max_actions, window_minutes=policy.window_minutes)

        now = self._clock()
        active = prune(window.timestamps, now=now, window_ms=policy.window_ms)
        return RateLimitStatus(
            current=len(active),
            max=policy.max_actions,
            window_minutes=policy.window_minutes,
            time_until_reset_ms=time_until_reset(active, now=now, window_ms=policy.window_ms),
        )

    async def clear_rate_limit(self, user_id: str, action: ActionType | None = None) -> None:
        validate_user_id(user_id)
        actions = [action] if action is not None else list(self._policies)
        for a in actions:
            key = storage_key(user_id, self.policy(a))
            try:
                await self._storage.remove(key)
            except StorageFailure:
                logger.opt(exception=True).error("Rate limit clear failed: {}", key)

    async def with_rate_limit(
        self,
        user_id: str,
        action: ActionType,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Check, run fn, record only if fn succeeded.
        A failed fn does not consume quota. Two concurrent calls may both pass
        the check before either records.
        """
        decision = await self.check_rate_limit(user_id, action)
        if not decision.allowed:
            logger.info("Rate limited: user={} action={} reset_ms={}", user_id, action.value, decision.time_until_reset_ms)
            raise RateLimitExceeded(
                decision.message or MSG_RATE_LIMITED,
                time_until_reset_ms=decision.time_until_reset_ms,
            )

        result = await fn()
        await self.record_action(user_id, action)
        return result

    async def _load(self, key: str) -> RateLimitWindow:
        raw = await self._storage.get(key)
        if raw is None:
            return RateLimitWindow(last_cleanup=self._clock())
        try:
            return RateLimitWindow.model_validate_json(raw)
        except PydanticValidationError as exc:
            raise CorruptValue(f"corrupt rate limit window: {key}") from exc
