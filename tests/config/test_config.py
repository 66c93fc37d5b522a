from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from caseflow.config import (
    ConfigurationError,
    ImportConfig,
    MissingConfigurationError,
    PriorityPolicy,
    StorageConfig,
    get_database_config,
    get_import_config,
    get_storage_config,
    require_env_var,
    require_env_vars,
    resolve_log_level,
)
from caseflow.config.logging import LOG_LEVEL_ENV

if TYPE_CHECKING:
    from pathlib import Path


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    assert require_env_vars(["EXAMPLE_VAR"]) == {"EXAMPLE_VAR": "value"}


def test_require_env_var_rejects_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "   ")
    monkeypatch.delenv("OTHER_VAR", raising=False)

    with pytest.raises(MissingConfigurationError, match="EXAMPLE_VAR"):
        require_env_var("EXAMPLE_VAR")
    with pytest.raises(MissingConfigurationError, match="EXAMPLE_VAR, OTHER_VAR"):
        require_env_vars(["OTHER_VAR", "EXAMPLE_VAR"])


def test_import_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CASEFLOW_IMPORT_BATCH_SIZE",
        "CASEFLOW_CASCADE_WINDOW_SECONDS",
        "CASEFLOW_PRIORITY_POLICY",
    ):
        monkeypatch.delenv(name, raising=False)

    config = get_import_config()

    assert config == ImportConfig()
    assert config.batch_size == 100
    assert config.cascade_window == timedelta(seconds=5)
    assert config.priority_policy is PriorityPolicy.COERCE


def test_import_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CASEFLOW_IMPORT_BATCH_SIZE", "25")
    monkeypatch.setenv("CASEFLOW_CASCADE_WINDOW_SECONDS", "1.5")
    monkeypatch.setenv("CASEFLOW_PRIORITY_POLICY", " Strict ")

    config = get_import_config()

    assert config.batch_size == 25
    assert config.cascade_window == timedelta(seconds=1.5)
    assert config.priority_policy is PriorityPolicy.STRICT


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CASEFLOW_IMPORT_BATCH_SIZE", "many"),
        ("CASEFLOW_IMPORT_BATCH_SIZE", "0"),
        ("CASEFLOW_CASCADE_WINDOW_SECONDS", "-1"),
        ("CASEFLOW_PRIORITY_POLICY", "lenient"),
    ],
)
def test_invalid_import_settings(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        get_import_config()


def test_import_config_rejects_non_positive_batch_size() -> None:
    with pytest.raises(ConfigurationError):
        ImportConfig(batch_size=0)


def test_storage_config_uses_data_dir_override(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("CASEFLOW_DATA_DIR", str(tmp_path / "data"))

    config = get_storage_config()

    assert config.resolve_data_dir() == (tmp_path / "data").resolve()
    assert config.database_path() == (tmp_path / "data" / "caseflow.db").resolve()
    assert (tmp_path / "data").is_dir()


def test_database_config_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATABASE_URI", "postgresql+psycopg://db/cases")
    monkeypatch.setenv("CASEFLOW_DB_TIMEOUT", "2.5")

    explicit = get_database_config(uri="sqlite+pysqlite:///:memory:")
    from_env = get_database_config()
    monkeypatch.delenv("DATABASE_URI")
    from_storage = get_database_config(storage=StorageConfig(data_dir=tmp_path))

    assert explicit.uri == "sqlite+pysqlite:///:memory:"
    assert explicit.is_sqlite
    assert from_env.uri == "postgresql+psycopg://db/cases"
    assert not from_env.is_sqlite
    assert from_env.timeout_seconds == 2.5
    assert from_storage.uri == f"sqlite+pysqlite:///{tmp_path.resolve() / 'caseflow.db'}"


def test_invalid_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CASEFLOW_DB_TIMEOUT", "soon")

    with pytest.raises(ConfigurationError, match="CASEFLOW_DB_TIMEOUT"):
        get_database_config(uri="sqlite+pysqlite:///:memory:")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, logging.INFO),
        ("", logging.INFO),
        ("debug", logging.DEBUG),
        (" Warning ", logging.WARNING),
        ("5", 5),
    ],
)
def test_resolve_log_level(
    value: str | None, expected: int, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)

    assert resolve_log_level(value) == expected


def test_log_level_is_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "error")

    assert resolve_log_level() == logging.ERROR


def test_unknown_log_level_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "chatty")

    with pytest.raises(ConfigurationError, match="must be a logging level name"):
        resolve_log_level()
