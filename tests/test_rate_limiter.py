"""Tests for the sliding-window RateLimiter: admission, reset time, persistence, fail-open."""

import json
from unittest.mock import AsyncMock

import pytest

from streettalk.domain.errors import RateLimitExceeded, ValidationError
from streettalk.domain.models import ActionType, RateLimitPolicy, Verdict
from streettalk.infrastructure.kv_storage import InMemoryKeyValueStorage, RedisKeyValueStorage
from streettalk.infrastructure.rate_limiter import RateLimiter

from conftest import SMALL_POLICIES, BrokenStorage

POST = ActionType.POST_CREATION
COMMENT = ActionType.COMMENT_CREATION


# ---------------------------------------------------------------------------
# 1. Sliding window admission
# ---------------------------------------------------------------------------

class TestSlidingWindow:
    @pytest.mark.asyncio
    async def test_empty_window_admits(self, limiter):
        decision = await limiter.check_rate_limit("u1", POST)
        assert decision.allowed
        assert decision.verdict is Verdict.ALLOWED
        assert decision.time_until_reset_ms is None
        assert decision.message is None

    @pytest.mark.asyncio
    async def test_denies_at_capacity_and_readmits_one_window_after_first(self, limiter, clock):
        start = clock.now
        for _ in range(3):
            await limiter.record_action("u1", POST)
            clock.advance(1)
        clock.now = start + 2

        denied = await limiter.check_rate_limit("u1", POST)
        assert not denied.allowed
        assert denied.verdict is Verdict.DENIED

        clock.now = start + 1_000
        readmitted = await limiter.check_rate_limit("u1", POST)
        assert readmitted.allowed

    @pytest.mark.asyncio
    async def test_one_ms_before_first_ages_out_still_denied(self, limiter, clock):
        start = clock.now
        for _ in range(3):
            await limiter.record_action("u1", POST)
        clock.now = start + 999
        assert not (await limiter.check_rate_limit("u1", POST)).allowed

    @pytest.mark.asyncio
    async def test_below_capacity_admits(self, limiter):
        await limiter.record_action("u1", POST)
        await limiter.record_action("u1", POST)
        assert (await limiter.check_rate_limit("u1", POST)).allowed

    @pytest.mark.asyncio
    async def test_windows_are_per_user_and_per_action(self, limiter):
        for _ in range(3):
            await limiter.record_action("u1", POST)
        assert not (await limiter.check_rate_limit("u1", POST)).allowed
        assert (await limiter.check_rate_limit("u2", POST)).allowed
        assert (await limiter.check_rate_limit("u1", COMMENT)).allowed

    @pytest.mark.asyncio
    async def test_check_does_not_record(self, limiter, storage):
        for _ in range(10):
            await limiter.check_rate_limit("u1", POST)
        assert storage.keys() == []
        status = await limiter.get_rate_limit_status("u1", POST)
        assert status.current == 0


# ---------------------------------------------------------------------------
# 2. Reset time and messages
# ---------------------------------------------------------------------------

class TestResetTime:
    @pytest.mark.asyncio
    async def test_reset_time_follows_oldest_entry(self, limiter, clock):
        start = clock.now
        for _ in range(3):
            await limiter.record_action("u1", POST)
            clock.advance(1)
        clock.now = start + 2

        decision = await limiter.check_rate_limit("u1", POST)
        assert decision.time_until_reset_ms == 998

    @pytest.mark.asyncio
    async def test_reset_time_bounded_and_decreasing(self, limiter, clock):
        for _ in range(3):
            await limiter.record_action("u1", POST)

        seen = []
        for _ in range(5):
            decision = await limiter.check_rate_limit("u1", POST)
            assert not decision.allowed
            assert 0 < decision.time_until_reset_ms <= 1_000
            seen.append(decision.time_until_reset_ms)
            clock.advance(150)

        assert seen == sorted(seen, reverse=True)
        assert len(set(seen)) == len(seen)

    @pytest.mark.asyncio
    async def test_denial_message_rounds_minutes_up(self, storage, clock):
        policies = {POST: RateLimitPolicy(max_actions=1, window_ms=10 * 60_000, storage_key_prefix="posts")}
        limiter = RateLimiter(storage=storage, policies=policies, clock=clock)
        await limiter.record_action("u1", POST)
        clock.advance(60_000 + 1)

        decision = await limiter.check_rate_limit("u1", POST)
        assert decision.message == "Slow down please. You can post again in 9 minutes."

    @pytest.mark.asyncio
    async def test_denial_message_singular_minute(self, limiter):
        for _ in range(5):
            await limiter.record_action("u1", COMMENT)
        decision = await limiter.check_rate_limit("u1", COMMENT)
        assert decision.message == "Slow down please. You can comment again in 1 minute."


# ---------------------------------------------------------------------------
# 3. Persistence format
# ---------------------------------------------------------------------------

class TestPersistence:
    @pytest.mark.asyncio
    async def test_storage_key_and_json_shape(self, limiter, storage, clock):
        await limiter.record_action("u1", POST)

        assert storage.keys() == ["rateLimit_u1_posts"]
        stored = json.loads(await storage.get("rateLimit_u1_posts"))
        assert stored == {"timestamps": [clock.now], "lastCleanup": clock.now}

    @pytest.mark.asyncio
    async def test_record_prunes_expired_entries(self, limiter, storage, clock):
        await limiter.record_action("u1", POST)
        clock.advance(5_000)
        await limiter.record_action("u1", POST)

        stored = json.loads(await storage.get("rateLimit_u1_posts"))
        assert stored["timestamps"] == [clock.now]

    @pytest.mark.asyncio
    async def test_reads_window_written_by_other_client(self, limiter, storage, clock):
        payload = {"timestamps": [clock.now - 10, clock.now - 5, clock.now - 1], "lastCleanup": clock.now}
        await storage.set("rateLimit_u1_posts", json.dumps(payload))

        assert not (await limiter.check_rate_limit("u1", POST)).allowed

    @pytest.mark.asyncio
    async def test_status_does_not_write_back(self, limiter, storage, clock):
        raw = json.dumps({"timestamps": [clock.now - 5_000, clock.now - 10], "lastCleanup": 0})
        await storage.set("rateLimit_u1_posts", raw)

        status = await limiter.get_rate_limit_status("u1", POST)
        assert status.current == 1
        assert await storage.get("rateLimit_u1_posts") == raw


# ---------------------------------------------------------------------------
# 4. Status for display
# ---------------------------------------------------------------------------

class TestStatus:
    @pytest.mark.asyncio
    async def test_empty_status(self, limiter):
        status = await limiter.get_rate_limit_status("u1", POST)
        assert status.current == 0
        assert status.max == 3
        assert status.window_minutes == pytest.approx(1_000 / 60_000)
        assert status.time_until_reset_ms is None

    @pytest.mark.asyncio
    async def test_status_counts_active_entries(self, limiter, clock):
        await limiter.record_action("u1", POST)
        clock.advance(400)
        await limiter.record_action("u1", POST)
        clock.advance(100)

        status = await limiter.get_rate_limit_status("u1", POST)
        assert status.current == 2
        assert status.time_until_reset_ms == 500
        assert not status.at_limit


# ---------------------------------------------------------------------------
# 5. with_rate_limit: execute then record
# ---------------------------------------------------------------------------

class TestWithRateLimit:
    @pytest.mark.asyncio
    async def test_success_records_and_returns_result(self, limiter):
        action = AsyncMock(return_value="post-1")
        result = await limiter.with_rate_limit("u1", POST, action)

        assert result == "post-1"
        action.assert_awaited_once()
        assert (await limiter.get_rate_limit_status("u1", POST)).current == 1

    @pytest.mark.asyncio
    async def test_failed_action_does_not_consume_quota(self, limiter):
        action = AsyncMock(side_effect=RuntimeError("backend down"))

        with pytest.raises(RuntimeError, match="backend down"):
            await limiter.with_rate_limit("u1", POST, action)

        assert (await limiter.get_rate_limit_status("u1", POST)).current == 0
        assert (await limiter.check_rate_limit("u1", POST)).allowed

    @pytest.mark.asyncio
    async def test_denied_never_invokes_action(self, limiter):
        for _ in range(3):
            await limiter.record_action("u1", POST)
        action = AsyncMock(return_value="never")

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.with_rate_limit("u1", POST, action)

        action.assert_not_awaited()
        assert exc_info.value.message.startswith("Slow down please. You can post again in")
        assert exc_info.value.time_until_reset_ms == 1_000
        assert exc_info.value.retry_delay_sec == 1.0
        assert (await limiter.get_rate_limit_status("u1", POST)).current == 3

    @pytest.mark.asyncio
    async def test_quota_exhausts_after_max_successes(self, limiter):
        for i in range(3):
            await limiter.with_rate_limit("u1", POST, AsyncMock(return_value=i))
        with pytest.raises(RateLimitExceeded):
            await limiter.with_rate_limit("u1", POST, AsyncMock())


# ---------------------------------------------------------------------------
# 6. Fail open
# ---------------------------------------------------------------------------

class TestFailOpen:
    @pytest.mark.asyncio
    async def test_read_failure_is_indeterminate_and_allowed(self, clock):
        limiter = RateLimiter(storage=BrokenStorage(), policies=SMALL_POLICIES, clock=clock)
        decision = await limiter.check_rate_limit("u1", POST)
        assert decision.verdict is Verdict.INDETERMINATE
        assert decision.allowed

    @pytest.mark.asyncio
    async def test_corrupt_window_is_indeterminate(self, limiter, storage):
        await storage.set("rateLimit_u1_posts", "{not json")
        decision = await limiter.check_rate_limit("u1", POST)
        assert decision.verdict is Verdict.INDETERMINATE

    @pytest.mark.asyncio
    async def test_wrong_shape_is_indeterminate(self, limiter, storage):
        await storage.set("rateLimit_u1_posts", json.dumps({"timestamps": "many"}))
        assert (await limiter.check_rate_limit("u1", POST)).verdict is Verdict.INDETERMINATE

    @pytest.mark.asyncio
    async def test_record_failure_is_swallowed(self, clock):
        storage = BrokenStorage(fail_get=False, fail_set=True)
        limiter = RateLimiter(storage=storage, policies=SMALL_POLICIES, clock=clock)
        await limiter.record_action("u1", POST)
        assert storage.keys() == []

    @pytest.mark.asyncio
    async def test_record_heals_corrupt_window(self, limiter, storage, clock):
        await storage.set("rateLimit_u1_posts", "garbage")
        await limiter.record_action("u1", POST)
        stored = json.loads(await storage.get("rateLimit_u1_posts"))
        assert stored["timestamps"] == [clock.now]

    @pytest.mark.asyncio
    async def test_unreadable_window_is_not_overwritten(self, clock):
        storage = BrokenStorage(fail_get=False, fail_set=False)
        limiter = RateLimiter(storage=storage, policies=SMALL_POLICIES, clock=clock)
        await limiter.record_action("u1", POST)
        await limiter.record_action("u1", POST)

        storage.fail_get = True
        await limiter.record_action("u1", POST)

        storage.fail_get = False
        stored = json.loads(await storage.get("rateLimit_u1_posts"))
        assert stored["timestamps"] == [clock.now, clock.now]

    @pytest.mark.asyncio
    async def test_undecodable_redis_value_fails_open(self, clock):
        redis = AsyncMock()
        redis.get.return_value = b"\xff\xfe{garbage"
        limiter = RateLimiter(storage=RedisKeyValueStorage(redis=redis), policies=SMALL_POLICIES, clock=clock)

        decision = await limiter.check_rate_limit("u1", POST)
        assert decision.verdict is Verdict.INDETERMINATE
        assert decision.allowed

        action = AsyncMock(return_value="posted")
        assert await limiter.with_rate_limit("u1", POST, action) == "posted"
        # undecodable means corrupt: the window is rewritten from scratch
        written = json.loads(redis.set.await_args.args[1])
        assert written["timestamps"] == [clock.now]

    @pytest.mark.asyncio
    async def test_status_on_failure_reports_zero(self, clock):
        limiter = RateLimiter(storage=BrokenStorage(), policies=SMALL_POLICIES, clock=clock)
        status = await limiter.get_rate_limit_status("u1", POST)
        assert status.current == 0
        assert status.max == 3

    @pytest.mark.asyncio
    async def test_with_rate_limit_runs_action_when_storage_is_down(self, clock):
        limiter = RateLimiter(storage=BrokenStorage(), policies=SMALL_POLICIES, clock=clock)
        action = AsyncMock(return_value="ok")
        assert await limiter.with_rate_limit("u1", POST, action) == "ok"


# ---------------------------------------------------------------------------
# 7. Clearing and input checks
# ---------------------------------------------------------------------------

class TestClearAndInputs:
    @pytest.mark.asyncio
    async def test_clear_single_action(self, limiter, storage):
        await limiter.record_action("u1", POST)
        await limiter.record_action("u1", COMMENT)

        await limiter.clear_rate_limit("u1", POST)
        assert storage.keys() == ["rateLimit_u1_comments"]

    @pytest.mark.asyncio
    async def test_clear_all_actions(self, limiter, storage):
        await limiter.record_action("u1", POST)
        await limiter.record_action("u1", COMMENT)
        await limiter.record_action("u2", POST)

        await limiter.clear_rate_limit("u1")
        assert storage.keys() == ["rateLimit_u2_posts"]

    @pytest.mark.asyncio
    async def test_empty_user_id_rejected(self, limiter):
        with pytest.raises(ValidationError):
            await limiter.check_rate_limit("", POST)

    @pytest.mark.asyncio
    async def test_unconfigured_action_rejected(self, clock):
        limiter = RateLimiter(
            storage=InMemoryKeyValueStorage(),
            policies={POST: SMALL_POLICIES[POST]},
            clock=clock,
        )
        with pytest.raises(ValueError):
            await limiter.check_rate_limit("u1", COMMENT)

    def test_default_policies(self):
        limiter = RateLimiter(storage=InMemoryKeyValueStorage())
        assert limiter.policy(POST) == RateLimitPolicy(max_actions=10, window_ms=600_000, storage_key_prefix="posts")
        assert limiter.policy(COMMENT) == RateLimitPolicy(max_actions=20, window_ms=300_000, storage_key_prefix="comments")
