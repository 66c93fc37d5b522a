"""Batch import defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum

from .env import optional_env_float, optional_env_int
from .errors import ConfigurationError

DEFAULT_IMPORT_BATCH_SIZE = 100
DEFAULT_CASCADE_WINDOW_SECONDS = 5.0


class PriorityPolicy(StrEnum):
    """How the validator treats priority values it cannot map to 1..3."""

    COERCE = "coerce"
    STRICT = "strict"


@dataclass(frozen=True, slots=True)
class ImportConfig:
    batch_size: int = DEFAULT_IMPORT_BATCH_SIZE
    cascade_window_seconds: float = DEFAULT_CASCADE_WINDOW_SECONDS
    priority_policy: PriorityPolicy = PriorityPolicy.COERCE

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.cascade_window_seconds < 0:
            raise ConfigurationError("cascade_window_seconds must be non-negative")

    @property
    def cascade_window(self) -> timedelta:
        return timedelta(seconds=self.cascade_window_seconds)


def get_import_config() -> ImportConfig:
    raw_policy = os.getenv("CASEFLOW_PRIORITY_POLICY", PriorityPolicy.COERCE.value)
    try:
        policy = PriorityPolicy(raw_policy.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in PriorityPolicy)
        raise ConfigurationError(
            f"CASEFLOW_PRIORITY_POLICY must be one of {allowed}, got {raw_policy!r}"
        ) from exc
    return ImportConfig(
        batch_size=optional_env_int(
            "CASEFLOW_IMPORT_BATCH_SIZE", DEFAULT_IMPORT_BATCH_SIZE, minimum=1
        ),
        cascade_window_seconds=optional_env_float(
            "CASEFLOW_CASCADE_WINDOW_SECONDS", DEFAULT_CASCADE_WINDOW_SECONDS, minimum=0.0
        ),
        priority_policy=policy,
    )
