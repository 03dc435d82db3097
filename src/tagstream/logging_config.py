import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are noisy at INFO and below
_LIBRARY_LOGGERS = ("aiohttp", "asyncio")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    force: bool = False,
    rich_console: bool = True,
) -> logging.Logger:
    """
    Set up logging for the ``tagstream`` logger hierarchy.

    Console output always goes to stderr: stdout carries listing results.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output
        format_string: Format for the file handler (and the plain console
            handler when ``rich_console`` is False)
        force: If True, reconfigure even if handlers exist
        rich_console: Render console records with rich instead of plain text

    Returns:
        Configured logger instance
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("tagstream")
    logger.setLevel(numeric_level)

    if force or not logger.handlers:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

        console_handler: logging.Handler
        if rich_console:
            console_handler = RichHandler(
                console=Console(stderr=True),
                show_path=numeric_level <= logging.DEBUG,
                markup=False,
            )
            console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(format_string))
        console_handler.setLevel(numeric_level)
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(format_string))
            logger.addHandler(file_handler)

    # Library chatter only matters when debugging tagstream itself
    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.propagate = False

    return logger
