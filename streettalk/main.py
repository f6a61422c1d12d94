from __future__ import annotations

import argparse
import asyncio

from loguru import logger

from .application.feed_fetcher import PaginatedFeedFetcher
from .application.services import rate_limit_banner
from .constants import APP_NAME
from .di import Container
from .domain.models import ActionType, QuerySpec
from .infrastructure.rate_limiter import RateLimiter
from .lifecycle import AppLifecycle
from .loader.logging import setup_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Show a user's write quota and the first page of their feed.",
    )
    parser.add_argument("user_id")
    parser.add_argument("--pages", type=int, default=1, help="feed pages to walk")
    return parser.parse_args(argv)


async def amain(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    container = Container.build()
    setup_logging(level=container.settings.log_level)

    async with AppLifecycle(container=container) as c:
        limiter: RateLimiter = c.get("rate_limiter")
        fetcher: PaginatedFeedFetcher = c.get("feed_fetcher")

        for action in ActionType:
            banner = await rate_limit_banner(limiter, args.user_id, action)
            logger.info("{}: {}", action.value, banner.text if banner else "no recent activity")

        seen = 0
        async for page in fetcher.iter_pages(
            QuerySpec.posts_feed(),
            container.settings.feed_page_size,
            viewer_id=args.user_id,
            max_pages=args.pages,
        ):
            seen += len(page.items)
            logger.info("page: {} visible / {} fetched, more={}", len(page.items), page.raw_count, page.has_more)
        logger.info("feed: {} visible item(s)", seen)


def main() -> None:
    asyncio.run(amain())


if __name__ == "__main__":
    main()
