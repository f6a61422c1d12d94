import pytest

from streettalk.application.feed_fetcher import PaginatedFeedFetcher
from streettalk.domain.models import ActionType, RateLimitPolicy
from streettalk.domain.errors import StorageFailure
from streettalk.infrastructure.block_list import BlockListService
from streettalk.infrastructure.document_store import InMemoryDocumentStore
from streettalk.infrastructure.kv_storage import InMemoryKeyValueStorage
from streettalk.infrastructure.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class BrokenStorage(InMemoryKeyValueStorage):
    """Storage whose reads and/or writes fail like an unavailable backend."""

    def __init__(self, *, fail_get: bool = True, fail_set: bool = True) -> None:
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise StorageFailure("disk unavailable")
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_set:
            raise StorageFailure("disk unavailable")
        await super().set(key, value)


SMALL_POLICIES = {
    ActionType.POST_CREATION: RateLimitPolicy(max_actions=3, window_ms=1_000, storage_key_prefix="posts"),
    ActionType.COMMENT_CREATION: RateLimitPolicy(max_actions=5, window_ms=500, storage_key_prefix="comments"),
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def limiter(storage, clock) -> RateLimiter:
    return RateLimiter(storage=storage, policies=SMALL_POLICIES, clock=clock)


@pytest.fixture
def store(clock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def block_list(store) -> BlockListService:
    return BlockListService(store=store)


@pytest.fixture
def fetcher(store, block_list) -> PaginatedFeedFetcher:
    return PaginatedFeedFetcher(store=store, block_list=block_list)
