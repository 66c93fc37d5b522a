"""Where the case store lives and how long storage calls may block."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_float

APP_DIR_NAME: Final[str] = "caseflow"
DEFAULT_DB_FILENAME: Final[str] = "caseflow.db"
DEFAULT_DB_TIMEOUT_SECONDS: Final[float] = 30.0
DATA_DIR_ENV: Final[str] = "CASEFLOW_DATA_DIR"
DATABASE_URI_ENV: Final[str] = "DATABASE_URI"
DB_TIMEOUT_ENV: Final[str] = "CASEFLOW_DB_TIMEOUT"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Local data directory holding the default SQLite case store."""

    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def database_path(self, *, create_dir: bool = True) -> Path:
        data_dir = self.resolve_data_dir()
        if create_dir:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.database_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Connection settings for the case store.

    ``timeout_seconds`` is handed to the driver: the busy timeout for SQLite,
    the connect timeout elsewhere.
    """

    uri: str
    timeout_seconds: float = DEFAULT_DB_TIMEOUT_SECONDS

    @property
    def is_sqlite(self) -> bool:
        return self.uri.startswith("sqlite")


def default_data_dir() -> Path:
    """Per-user data directory (``%LOCALAPPDATA%`` or ``$XDG_DATA_HOME``)."""

    if os.name == "nt":
        root = os.getenv("LOCALAPPDATA")
        base = Path(root) if root else Path.home() / "AppData" / "Local"
    else:
        root = os.getenv("XDG_DATA_HOME")
        base = Path(root) if root else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    override = os.getenv(DATA_DIR_ENV)
    return StorageConfig(data_dir=Path(override) if override else default_data_dir())


def get_database_config(
    *,
    uri: str | None = None,
    storage: StorageConfig | None = None,
) -> DatabaseConfig:
    """Resolve the database URI: explicit ``uri``, then ``DATABASE_URI``, then the data dir."""

    timeout = optional_env_float(DB_TIMEOUT_ENV, DEFAULT_DB_TIMEOUT_SECONDS, minimum=0.0)
    chosen = uri or os.getenv(DATABASE_URI_ENV)
    if not chosen:
        chosen = (storage or get_storage_config()).database_uri()
    return DatabaseConfig(uri=chosen, timeout_seconds=timeout)
