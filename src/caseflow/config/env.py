"""Typed readers for ``CASEFLOW_*`` environment settings."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


def _raw(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    """Return every named setting, trimmed; report all blank ones at once."""

    values = {name: _raw(name) for name in names}
    missing = sorted(name for name, value in values.items() if value is None)
    if missing:
        raise MissingConfigurationError(f"Missing configuration for: {', '.join(missing)}")
    return {name: value for name, value in values.items() if value is not None}


def require_env_var(name: str) -> str:
    return require_env_vars([name])[name]


def _optional_number[T: (int, float)](
    name: str,
    default: T,
    *,
    parse: Callable[[str], T],
    kind: str,
    minimum: T | None,
) -> T:
    raw = _raw(name)
    if raw is None:
        return default
    try:
        value = parse(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be {kind}, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def optional_env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    return _optional_number(name, default, parse=int, kind="an integer", minimum=minimum)


def optional_env_float(name: str, default: float, *, minimum: float | None = None) -> float:
    return _optional_number(name, default, parse=float, kind="a number", minimum=minimum)
