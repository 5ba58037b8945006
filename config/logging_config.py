"""Loguru setup shared by the client entry point and tests."""

import logging
import sys

from loguru import logger

# Third-party loggers that are chatty at DEBUG
_NOISY_LOGGERS = ("socketio", "engineio", "httpx", "httpcore")


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (socketio, engineio, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(log_file: str, level: str = "INFO") -> None:
    """Configure loguru sinks and intercept stdlib logging.

    Safe to call more than once; previous sinks are removed.
    """
    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        log_file,
        level="DEBUG",
        encoding="utf-8",
        rotation="10 MB",
        enqueue=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
