"""Errors raised by the case and import-log services."""

from __future__ import annotations


class CaseflowError(Exception):
    """Base class for service-level failures reported to callers."""


class PermissionDeniedError(CaseflowError):
    """Raised when the caller may not act on a record."""


class CaseNotFoundError(CaseflowError):
    def __init__(self, case_key: str) -> None:
        self.case_key = case_key
        super().__init__(f"Case not found: {case_key}")


class ImportLogNotFoundError(CaseflowError):
    def __init__(self, log_id: object) -> None:
        self.log_id = log_id
        super().__init__(f"Import log not found: {log_id}")


class CaseUpdateError(CaseflowError):
    """Raised when a partial edit names unknown fields or carries invalid values."""


class InvalidCursorError(CaseflowError):
    """Raised when a pagination cursor cannot be decoded."""


class NoteError(CaseflowError):
    """Raised when a note cannot be added."""
