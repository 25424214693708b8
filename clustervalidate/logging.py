"""Logging configuration for the clustervalidate package."""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from clustervalidate.config import Config


def setup_logging(debug_mode: bool = False) -> None:
    """Configure root logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ]
    )


def add_file_handler(settings, logger: logging.Logger = None) -> RotatingFileHandler:
    """
    Also write logs to a rotating file.

    Args:
        settings: A ``LoggingConfig`` with file, level, max_size_mb and backup_count
        logger: Logger to attach to (default: the root logger)

    Returns:
        The attached handler
    """
    logger = logger or logging.getLogger()
    log_file = Path(settings.file).expanduser().absolute()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backup_count
    )
    file_handler.setLevel(getattr(logging, settings.level, logging.INFO))
    file_handler.setFormatter(logging.Formatter(Config.LOG_FORMAT))
    logger.addHandler(file_handler)
    logger.debug(f"Logging to file: {log_file}")
    return file_handler
