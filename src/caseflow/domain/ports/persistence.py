"""Ports for persisting cases, import logs and notes.

Adapters translate their driver errors into the ``PersistenceError`` family
below; the domain never sees storage-specific exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime, timedelta
    from uuid import UUID

    from caseflow.domain.model import Case, CaseFields, CaseStatus, ImportLog, Note


class PersistenceError(RuntimeError):
    """Raised when a storage operation fails for one record."""


class ConstraintViolationError(PersistenceError):
    """Raised when a write violates a storage constraint."""


class KeyConflictError(ConstraintViolationError):
    """Raised when an insert collides with an existing ``case_key``."""

    def __init__(self, case_key: str, message: str | None = None) -> None:
        self.case_key = case_key
        super().__init__(message or f"case_key already exists: {case_key}")


@dataclass(frozen=True, slots=True, kw_only=True)
class CaseQuery:
    """Filters for listing cases. ``None`` means "do not filter"."""

    status: CaseStatus | None = None
    category: str | None = None
    priority: int | None = None
    imported_from: datetime | None = None
    imported_to: datetime | None = None
    search: str | None = None
    imported_by: str | None = None


@dataclass(frozen=True, slots=True)
class CaseCursor:
    """Keyset position: the last row of the previous page."""

    imported_at: datetime
    case_id: UUID


@dataclass(frozen=True, slots=True)
class CascadeDeleteResult:
    import_log_id: UUID
    deleted_case_count: int
    deleted_note_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "deletedImportLogId": str(self.import_log_id),
            "deletedCases": self.deleted_case_count,
            "deletedNotes": self.deleted_note_count,
        }


@runtime_checkable
class CaseRepository(Protocol):
    """Persistence contract for cases."""

    def upsert_by_key(
        self,
        case_key: str,
        fields: CaseFields,
        *,
        status: CaseStatus,
        imported_by: str | None,
        imported_at: datetime,
    ) -> Case:
        """Atomically update the case with ``case_key`` or insert it.

        Clears ``error_message``. Raises ``ConstraintViolationError`` only for
        reasons other than the key itself.
        """
        ...

    def create(self, case: Case) -> Case:
        """Plain insert; raises ``KeyConflictError`` on a duplicate key."""
        ...

    def find_by_key(self, case_key: str) -> Case | None: ...

    def get(self, case_id: UUID) -> Case | None: ...

    def query(
        self,
        filters: CaseQuery,
        *,
        limit: int,
        after: CaseCursor | None = None,
    ) -> Sequence[Case]: ...

    def update(self, case: Case, changes: Mapping[str, object]) -> Case: ...

    def failed_in_window(self, start: datetime, end: datetime) -> Sequence[Case]: ...


@runtime_checkable
class ImportLogRepository(Protocol):
    """Persistence contract for import run summaries."""

    def create(self, log: ImportLog) -> ImportLog: ...

    def get(self, log_id: UUID) -> ImportLog | None: ...

    def list_runs(self, *, run_by: str | None = None) -> Sequence[ImportLog]: ...

    def delete_cascade(self, log: ImportLog, *, window: timedelta) -> CascadeDeleteResult:
        """Delete notes of the run's FAILED cases, those cases, then the log.

        All three deletes succeed together or not at all.
        """
        ...


@runtime_checkable
class NoteRepository(Protocol):
    """Persistence contract for case notes."""

    def create(self, note: Note) -> Note: ...

    def list_for_case(self, case_id: UUID) -> Sequence[Note]: ...
