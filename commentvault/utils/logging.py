"""Logging setup for the API process and its event handlers."""

import logging
import sys

from commentvault.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Per-request chatter from the HTTP and database drivers
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "aiosqlite")


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logging from settings.

    ``LOG_LEVEL`` wins; otherwise development logs at DEBUG and every other
    environment at INFO. SQL statements are only logged with ``DATABASE_ECHO``.
    """
    settings = settings or get_settings()
    level = settings.log_level or ("DEBUG" if settings.is_development else "INFO")

    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Tag crawl step messages with their video or crawl, e.g. ``[crawl_id=4]``."""

    def __init__(self, logger: logging.Logger, **context: object) -> None:
        self.logger = logger
        self.prefix = " ".join(f"[{k}={v}]" for k, v in context.items())

    def info(self, msg: str) -> None:
        self.logger.info(f"{self.prefix} {msg}")

    def warning(self, msg: str) -> None:
        self.logger.warning(f"{self.prefix} {msg}")

    def error(self, msg: str) -> None:
        self.logger.error(f"{self.prefix} {msg}")
