"""
Logging configuration
"""
import logging
import sys
from pathlib import Path
from types import FrameType
from typing import Optional, Union

from loguru import logger
from fsrs_engine.core.config import settings

ENGINE_LOGGER_PREFIX = "fsrs_engine"


def _caller_depth(frame: Optional[FrameType]) -> int:
    """Stack depth of the first frame outside the logging package"""
    depth = 2
    while frame is not None and frame.f_code.co_filename == logging.__file__:
        frame = frame.f_back
        depth += 1
    return depth


def _loguru_level(record: logging.LogRecord) -> Union[str, int]:
    """Named loguru level when one exists, else the numeric stdlib level"""
    try:
        return logger.level(record.levelname).name
    except ValueError:
        return record.levelno


class InterceptHandler(logging.Handler):
    """
    Hand stdlib records to loguru

    The stdlib logger name is bound as ``extra["source"]`` so sinks can tell
    engine records apart from third-party ones.
    """

    def emit(self, record: logging.LogRecord) -> None:
        depth = _caller_depth(logging.currentframe())
        logger.bind(source=record.name).opt(depth=depth, exception=record.exc_info).log(
            _loguru_level(record), record.getMessage()
        )


def setup_logging():
    """
    Route engine logging through loguru

    Call once from the embedding application. Library modules only use
    logging.getLogger(__name__) and never configure handlers themselves.
    """
    logger.remove()

    logger.add(
        sys.stdout,
        enqueue=True,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
    )

    # Rotating file sink for production, engine records only
    if settings.ENVIRONMENT == "production":
        log_path = Path(settings.LOG_DIR)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "fsrs_engine_{time:YYYY-MM-DD}.log",
            rotation="500 MB",
            retention="30 days",
            enqueue=True,
            serialize=False,
            level=settings.LOG_LEVEL,
            filter=lambda message: message["extra"].get("source", "").startswith(ENGINE_LOGGER_PREFIX),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[source]}:{function}:{line} - {message}",
        )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.LOG_LEVEL)

    # Engine loggers propagate to the intercepted root
    for name in list(logging.root.manager.loggerDict.keys()):
        if name.startswith(ENGINE_LOGGER_PREFIX):
            logging.getLogger(name).handlers = []
            logging.getLogger(name).propagate = True

    logger.info(f"Logging configured - Level: {settings.LOG_LEVEL}, Environment: {settings.ENVIRONMENT}")
