"""File logging for the laterr local data layer.

Writes to ``<data_dir>/logs/local-YYYY-MM-DD.log``. Call
``setup_laterr_logging()`` once at process start; library modules only use
``logging.getLogger(__name__)``.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Optional, Union

from .utils import get_laterr_home

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("laterr")


def get_log_dir(data_dir: Optional[Path] = None) -> Path:
    return (data_dir or get_laterr_home()) / "logs"


def setup_laterr_logging(
    level: Union[str, int] = "INFO", data_dir: Optional[Path] = None
) -> logging.Logger:
    """Attach a dated file handler to the ``laterr`` logger.

    Calling it again replaces the level but never adds a second file handler.

    Args:
        level: Level name (case-insensitive) or numeric level.
        data_dir: Override for the data directory.

    Returns:
        The configured ``laterr`` logger.
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            numeric = logging.INFO
    else:
        numeric = level
    logger.setLevel(numeric)

    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return logger

    log_dir = get_log_dir(data_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(
            log_dir / f"local-{date.today().isoformat()}.log", encoding="utf-8"
        )
    except OSError as e:
        logger.warning(f"Could not set up file logging in {log_dir}: {e}")
        return logger

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def log_mutation(operation: str, table: str, count: int) -> None:
    """Record a persisted insert/update/delete."""
    logging.getLogger("laterr.mutation").info(
        f"op={operation} table={table} rows={count}"
    )


def log_auth_event(event: str, email: Optional[str] = None, reason: Optional[str] = None) -> None:
    """Record an auth event; ``reason`` keeps internal detail out of user-facing errors."""
    parts = [f"event={event}"]
    if email:
        parts.append(f"email={email}")
    if reason:
        parts.append(f"reason={reason}")
    logging.getLogger("laterr.auth").info(" ".join(parts))
