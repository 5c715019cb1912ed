import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelName(str(level).upper()) if str(level).strip() else logging.INFO


def setup_logger(name: str, log_file: Optional[str], level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Create and return a logger that writes to `log_file`.
    - Ensures the directory exists.
    - Uses a rotating handler to avoid giant files.
    - Without a log file, messages go to stderr.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_coerce_level(level))

    # Avoid adding multiple handlers if setup_logger is called twice
    if any(getattr(h, "_campus_inventory", False) for h in logger.handlers):
        return logger

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._campus_inventory = True
    logger.addHandler(handler)
    return logger


def configure_app_logging(app) -> logging.Logger:
    """Attach the configured handler to the Flask application logger."""
    return setup_logger(app.logger.name, app.config.get("LOG_FILE"), app.config.get("LOG_LEVEL", "INFO"))
