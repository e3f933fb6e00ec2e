"""Logging setup for applications embedding lorekeeper.

Library code only ever calls `loguru.logger`; sinks are installed by the
host application, either its own or through configure_logging().
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

DEFAULT_LOG_FILE = Path.home() / ".lorekeeper" / "lorekeeper.log"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(
    level: str = "WARNING",
    log_file: Optional[Path] = None,
    verbose: bool = False,
    file_logging: bool = True,
) -> list[int]:
    """
    Replace loguru's sinks with a console sink and a rotating file sink.

    Lore and memory decisions (matched keys, probability rolls, scopes
    queried, scores) are logged at DEBUG, so the file sink records them
    even when the console stays quiet.

    Args:
        level: Console level (default: WARNING)
        log_file: File sink path (default: ~/.lorekeeper/lorekeeper.log)
        verbose: Show DEBUG on the console
        file_logging: Install the file sink at all

    Returns:
        Handler ids of the installed sinks, for logger.remove().
    """
    logger.remove()
    console_level = "DEBUG" if verbose else level

    handler_ids = [
        logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT, backtrace=True, diagnose=verbose)
    ]

    if file_logging:
        path = Path(log_file) if log_file else DEFAULT_LOG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(logger.add(
            str(path),
            level="DEBUG",
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            enqueue=True,
        ))
        logger.debug(f"lorekeeper logging to {path} (console level {console_level})")

    logger.enable("lorekeeper")
    return handler_ids
