"""
Logging setup for the graph unfolding machine.

Every module logs through logging.getLogger(__name__) under the "gum"
namespace. Nothing is configured on import; applications call
setup_logging() once (the example runner does).

Usage:
    from gum.logging_config import setup_logging
    setup_logging("DEBUG", log_file="unfolding.log")
"""
import logging
from typing import Optional, Union

LOGGER_NAME = "gum"
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(threadName)s] - %(name)s - %(message)s"

# Marks handlers installed here so repeated calls do not stack them
_HANDLER_FLAG = "_gum_handler"


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(level: Union[str, int] = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a console handler (and optionally a file handler) to the "gum" logger.

    Calling it again only updates the level and adds a file handler if a new
    log_file is given.

    Returns:
        The "gum" package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_level(level))
    formatter = logging.Formatter(LOG_FORMAT)

    installed = [h for h in logger.handlers if getattr(h, _HANDLER_FLAG, False)]
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler) for h in installed):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        setattr(console, _HANDLER_FLAG, True)
        logger.addHandler(console)

    if log_file is not None:
        known_files = {getattr(h, "baseFilename", None) for h in installed}
        file_handler = logging.FileHandler(log_file, encoding="utf-8", delay=True)
        if file_handler.baseFilename in known_files:
            file_handler.close()
        else:
            file_handler.setFormatter(formatter)
            setattr(file_handler, _HANDLER_FLAG, True)
            logger.addHandler(file_handler)

    return logger
