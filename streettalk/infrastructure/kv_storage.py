from __future__ import annotations

from typing import Dict, Optional, Protocol, runtime_checkable

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from streettalk.domain.errors import CorruptValue, StorageFailure


@runtime_checkable
class KeyValueStorage(Protocol):
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def remove(self, key: str) -> None: ...


class InMemoryKeyValueStorage:
    """Process-local storage. Used when REDIS_DSN is not set, and in tests."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class RedisKeyValueStorage:
    """
    Durable storage on Redis.
    Every Redis error is re-raised as StorageFailure; callers decide how to degrade.
    """

    def __init__(self, *, redis: Redis, ttl_sec: Optional[int] = None) -> None:
        self._redis = redis
        self._ttl = ttl_sec

    async def start(self) -> None:
        try:
            await self._redis.ping()
        except RedisError as exc:
            raise StorageFailure("redis is unreachable") from exc
        logger.info("Connected to Redis")

    async def stop(self) -> None:
        await self._redis.aclose()

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                value = value.decode("utf-8")
        except UnicodeDecodeError as exc:
            # decode_responses clients fail inside get() already
            raise CorruptValue(f"undecodable value: {key}") from exc
        except RedisError as exc:
            raise StorageFailure(f"redis get failed: {key}") from exc
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value, ex=self._ttl)
        except RedisError as exc:
            raise StorageFailure(f"redis set failed: {key}") from exc

    async def remove(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise StorageFailure(f"redis delete failed: {key}") from exc
