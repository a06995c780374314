"""
Logging setup for schemasync.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import LoggingConfig


def setup_logging(
    config: LoggingConfig,
    debug: bool = False,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Configure the root logger from a LoggingConfig.

    Console output goes through rich; a rotating file handler is added
    when ``config.file`` is set. Calling this again replaces handlers
    installed by a previous call.
    """
    level = logging.DEBUG if debug else getattr(logging, config.level)
    root = logging.getLogger()

    for handler in list(root.handlers):
        if getattr(handler, "_schemasync", False):
            root.removeHandler(handler)

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
    )
    rich_handler.setLevel(level)
    rich_handler._schemasync = True
    root.addHandler(rich_handler)

    if config.file:
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(config.format))
        file_handler.setLevel(level)
        file_handler._schemasync = True
        root.addHandler(file_handler)

    root.setLevel(level)
    # aiohttp is chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(max(level, logging.INFO))
    return root
