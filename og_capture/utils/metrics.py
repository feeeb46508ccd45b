"""Logging configuration and timing utilities."""

import logging
import time
from contextlib import contextmanager
from typing import Iterator

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Format type ('json' or 'text')
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        # Message-only lines for log collectors
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=[logging.StreamHandler()])

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: level={log_level}, format={log_format}")


def elapsed_ms(start: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - start) * 1000)


@contextmanager
def log_duration(logger: logging.Logger, stage: str) -> Iterator[None]:
    """Log how long a block took at DEBUG level, even when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.debug(f"{stage} took {elapsed_ms(start)}ms")
