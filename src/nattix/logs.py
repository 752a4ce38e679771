"""Error log files.

Nattix logs through standard named loggers (``nattix.server``,
``nattix.data``, ``nattix.plugins``, ``nattix.routing``) and never
touches the root logger on import. ``configure_error_logs()`` is the
opt-in that writes those records to per-level files on disk::

    logs/
      error/error.log
      critical/critical.log
      info/info.log
      generic/generic.log
      errors/duplicate/duplicate_error.log
      errors/authentication/authentication_error.log
      errors/generic/generic_error.log

Each file rotates at ``max_bytes`` (1 MiB by default).
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LEVEL_FILES: dict[str, int] = {
    "error": logging.ERROR,
    "info": logging.INFO,
    "critical": logging.CRITICAL,
    "generic": logging.WARNING,
}

# Database driver failures are tagged with one of these by
# ``nattix.data.database`` (``record.db_category``).
DB_CATEGORIES = ("duplicate", "authentication", "generic")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ExactLevel(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self._level


class _DBCategory(logging.Filter):
    def __init__(self, category: str) -> None:
        super().__init__()
        self._category = category

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "db_category", None) == self._category


def _file_handler(path: Path, max_bytes: int) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=1, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def configure_error_logs(
    log_dir: str | Path,
    *,
    max_bytes: int = 1024 * 1024,
    logger_name: str = "nattix",
) -> list[logging.Handler]:
    """Attach rotating per-level file handlers to the ``nattix`` logger.

    Returns the installed handlers so callers (and tests) can remove them.
    """
    root = Path(log_dir)
    logger = logging.getLogger(logger_name)
    handlers: list[logging.Handler] = []

    for name, level in LEVEL_FILES.items():
        handler = _file_handler(root / name / f"{name}.log", max_bytes)
        handler.addFilter(_ExactLevel(level))
        handlers.append(handler)

    for category in DB_CATEGORIES:
        handler = _file_handler(
            root / "errors" / category / f"{category}_error.log", max_bytes
        )
        handler.addFilter(_DBCategory(category))
        handlers.append(handler)

    for handler in handlers:
        logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    return handlers


def remove_handlers(handlers: list[logging.Handler], *, logger_name: str = "nattix") -> None:
    """Detach and close handlers returned by ``configure_error_logs()``."""
    logger = logging.getLogger(logger_name)
    for handler in handlers:
        logger.removeHandler(handler)
        handler.close()
