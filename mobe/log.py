"""structlog setup for the server process."""

from __future__ import annotations

import logging
from typing import List, Optional

import structlog


def configure_logging(level: str = "INFO", error_log_path: Optional[str] = None) -> None:
    """Route structlog through the stdlib root logger.

    When ``error_log_path`` is given every record at ERROR or above is also
    appended to that file.
    """

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level {level!r}")

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if error_log_path:
        file_handler = logging.FileHandler(error_log_path)
        file_handler.setLevel(logging.ERROR)
        handlers.append(file_handler)
    logging.basicConfig(level=numeric_level, format="%(message)s", handlers=handlers, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
