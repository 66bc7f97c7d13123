"""Logging configuration."""

import logging
import os
import sys

from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # Render records with rich; stdout stays free for the conversation either way
    rich: bool = False

    # Chatty transport loggers capped at WARNING
    quiet_loggers: tuple[str, ...] = ("httpx", "httpcore", "limits")


def _build_handler(config: LogConfig) -> logging.Handler:
    if config.rich:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            log_time_format=config.date_format,
        )
        handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
        return handler

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(config.format, datefmt=config.date_format))
    return handler


def setup_logging(config: LogConfig | None = None) -> None:
    """Set up logging for an embedding process or the terminal client.

    Args:
        config: Logging configuration; the level defaults to the LOG_LEVEL environment variable
    """
    if config is None:
        config = LogConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        handlers=[_build_handler(config)],
        force=True,  # Override any existing configuration
    )

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level, otherwise the LOG_LEVEL environment variable

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    log_level = level if level else os.getenv("LOG_LEVEL", "INFO")
    logger.setLevel(log_level.upper())

    return logger
