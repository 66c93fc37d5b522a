"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class CaseStatus(StrEnum):
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: str) -> CaseStatus:
        """Case-insensitive lookup; raises ``ValueError`` for unknown labels."""
        return cls(value.strip().upper())


class Role(StrEnum):
    """Caller roles. ``ADMIN`` is the only elevated role."""

    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"

    @classmethod
    def parse(cls, value: str | None) -> Role:
        if value is None or not value.strip():
            return cls.OPERATOR
        return cls(value.strip().upper())


class Priority(StrEnum):
    """Spreadsheet labels accepted for the numeric priority column."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def level(self) -> int:
        return _PRIORITY_LEVELS[self]


_PRIORITY_LEVELS = {Priority.LOW: 1, Priority.MEDIUM: 2, Priority.HIGH: 3}

MIN_PRIORITY = 1
MAX_PRIORITY = 3
