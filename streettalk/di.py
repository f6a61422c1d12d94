from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from .application.feed_fetcher import PaginatedFeedFetcher
from .application.services import CommentService, PostService, ReportService, UserProfileService
from .config.settings import AppSettings, get_settings
from .infrastructure.block_list import BlockListService
from .infrastructure.document_store import DocumentStore, FirestoreDocumentStore, InMemoryDocumentStore
from .infrastructure.kv_storage import InMemoryKeyValueStorage, KeyValueStorage, RedisKeyValueStorage
from .infrastructure.rate_limiter import RateLimiter
from .loader.firestore import create_firestore
from .loader.redis import create_redis


class DIError(RuntimeError):
    pass


@runtime_checkable
class AsyncStartStop(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...


@dataclass(slots=True)
class Container:
    settings: AppSettings
    _components: dict[str, Any]

    @classmethod
    def build(cls, settings: Optional[AppSettings] = None) -> "Container":
        return cls(settings=settings or get_settings(), _components={})

    def register(self, name: str, component: Any) -> None:
        if not name or not name.strip():
            raise DIError("Component name must be non-empty")
        if name in self._components:
            raise DIError(f"Component already registered: {name}")
        self._components[name] = component

    def get(self, name: str) -> Any:
        try:
            return self._components[name]
        except KeyError as exc:
            raise DIError(f"Unknown component: {name}") from exc

    def all_components(self) -> list[tuple[str, Any]]:
        return list(self._components.items())


def build_graph(
    container: Container,
    *,
    storage: Optional[KeyValueStorage] = None,
    store: Optional[DocumentStore] = None,
) -> None:
    """
    Build the whole dependency graph.
    storage/store override the configured backends (tests, embedding apps).
    """

    s = container.settings

    if storage is None:
        redis = create_redis(s)
        storage = (
            RedisKeyValueStorage(redis=redis, ttl_sec=s.rate_limit_key_ttl_sec)
            if redis is not None
            else InMemoryKeyValueStorage()
        )
    if store is None:
        client = create_firestore(s)
        store = FirestoreDocumentStore(client=client) if client is not None else InMemoryDocumentStore()

    rate_limiter = RateLimiter(storage=storage, policies=s.rate_limit_policies())
    block_list = BlockListService(store=store)
    fetcher = PaginatedFeedFetcher(store=store, block_list=block_list)

    posts = PostService(store=store, rate_limiter=rate_limiter, strict_content_filter=s.strict_content_filter)
    comments = CommentService(store=store, rate_limiter=rate_limiter, strict_content_filter=s.strict_content_filter)
    reports = ReportService(store=store)
    users = UserProfileService(store=store)

    # Register (lifecycle start order follows registration order)
    container.register("kv_storage", storage)
    container.register("document_store", store)

    container.register("rate_limiter", rate_limiter)
    container.register("block_list", block_list)
    container.register("feed_fetcher", fetcher)

    container.register("post_service", posts)
    container.register("comment_service", comments)
    container.register("report_service", reports)
    container.register("user_service", users)
