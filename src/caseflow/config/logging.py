"""Console logging for the caseflow CLI and scripts."""

from __future__ import annotations

import logging
import os
from typing import Final

from .errors import ConfigurationError

LOG_LEVEL_ENV: Final[str] = "CASEFLOW_LOG_LEVEL"
LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
# SQLAlchemy statement and pool logging never drops below WARNING.
QUIET_LOGGERS: Final[tuple[str, ...]] = ("sqlalchemy.engine", "sqlalchemy.pool")


def resolve_log_level(value: str | None = None) -> int:
    """Map a level name (``debug``, ``INFO``...) or number onto a logging level."""

    raw = value if value is not None else os.getenv(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return logging.INFO
    text = raw.strip()
    if text.isdecimal():
        return int(text)
    level = logging.getLevelNamesMapping().get(text.upper())
    if level is None:
        raise ConfigurationError(f"{LOG_LEVEL_ENV} must be a logging level name, got {raw!r}")
    return level


def configure_logging(*, level: int | None = None, force: bool = False) -> None:
    """Install the root handler used for import runs.

    ``level`` defaults to ``CASEFLOW_LOG_LEVEL`` (INFO when unset). Row-level
    diagnostics are logged at DEBUG, so raise the level to see them.
    """

    effective = resolve_log_level() if level is None else level
    logging.basicConfig(
        level=effective,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        force=force,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(effective, logging.WARNING))
