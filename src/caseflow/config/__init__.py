"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_float, optional_env_int, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .importing import ImportConfig, PriorityPolicy, get_import_config
from .logging import configure_logging, resolve_log_level
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "ImportConfig",
    "MissingConfigurationError",
    "PriorityPolicy",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_import_config",
    "get_storage_config",
    "optional_env_float",
    "optional_env_int",
    "require_env_var",
    "require_env_vars",
    "resolve_log_level",
]
