import logging
import os
import sys
from pathlib import Path

from loguru import logger

# stdlib loggers that are too chatty at INFO (httpx logs every RPC request)
_QUIET_LIBRARIES = ("httpx", "httpcore", "asyncio")


class _InterceptHandler(logging.Handler):
    """Forward stdlib logging records (SQLAlchemy, alembic, httpx) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logger(*, json_logs: bool = False, level: str = "INFO", log_dir: str = "logs") -> None:
    """Configure loguru sinks for the indexer and its scripts.

    LOG_LEVEL in the environment overrides ``level`` for the console sink.
    The rotating file sink always records DEBUG so individual repair and
    ranking decisions can be traced after the fact.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()

    if json_logs:
        logger.add(sys.stderr, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <7}</level> | "
                "<cyan>{name}</cyan> - <level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger.add(
        f"{log_dir}/indexer_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="7 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
        enqueue=True,
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=logging.INFO, force=True)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
