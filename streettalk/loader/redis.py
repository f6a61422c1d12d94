from typing import Optional

from loguru import logger
from redis.asyncio import Redis

from streettalk.config.settings import AppSettings


def create_redis(settings: AppSettings) -> Optional[Redis]:
    if not settings.redis_dsn:
        logger.warning("REDIS_DSN is not set, rate limit windows are kept in memory")
        return None
    return Redis.from_url(settings.redis_dsn, decode_responses=True)
