import logging
import sys

from loguru import logger


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _stdlib_level(level: str) -> int:
    # loguru-only levels (TRACE) let every stdlib record through
    value = logging.getLevelName(level)
    return value if isinstance(value, int) else logging.NOTSET


def setup_logging(level: str = "INFO") -> None:
    std_level = _stdlib_level(level)
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(std_level)

    # client libraries log through the stdlib
    for name in ("redis", "google", "asyncio"):
        logging.getLogger(name).setLevel(std_level)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>",
        backtrace=True,
        diagnose=False,
    )

    logger.info("Logging configured")
