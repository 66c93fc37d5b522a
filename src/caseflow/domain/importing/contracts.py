"""Shared contracts for the batch import reconciliation engine.

This module intentionally holds only:
- run-level error types
- the per-row state enum and the row error record
- tagged results for fallback persistence and best-effort side channels
- the report returned to callers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


class FatalInputError(ValueError):
    """Raised when the payload is structurally unusable; nothing is persisted."""


class PersistenceUnavailableError(RuntimeError):
    """Raised when a batch cannot be committed and the run must stop."""


class RowState(StrEnum):
    PENDING = "pending"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    VALIDATION_FAILED = "validation_failed"
    PERSIST_FAILED = "persist_failed"
    SUCCEEDED = "succeeded"

    @property
    def is_failure(self) -> bool:
        return self in {RowState.VALIDATION_FAILED, RowState.PERSIST_FAILED}


@dataclass(frozen=True, slots=True)
class RowError:
    """One entry of the report's error list.

    ``index`` is the row's position in the submitted payload, so callers can
    point back to the spreadsheet line regardless of processing order.
    """

    index: int
    case_key: str | None
    message: str
    state: RowState

    def to_dict(self) -> dict[str, object]:
        return {"index": self.index, "caseKey": self.case_key, "error": self.message}


class FallbackStatus(StrEnum):
    STORED = "stored"
    STORED_WITH_SUFFIX = "stored_with_suffix"
    PERSIST_FATAL = "persist_fatal"


@dataclass(frozen=True, slots=True)
class FallbackOutcome:
    """Result of persisting a failed row under a synthetic key."""

    status: FallbackStatus
    case_key: str | None = None
    attempts: int = 1
    detail: str | None = None

    @property
    def stored(self) -> bool:
        return self.status is not FallbackStatus.PERSIST_FATAL


@dataclass(frozen=True, slots=True)
class SideEffectResult:
    """Outcome of a best-effort write that never changes the run's counts."""

    ok: bool
    detail: str | None = None

    @classmethod
    def success(cls, detail: str | None = None) -> SideEffectResult:
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, detail: str) -> SideEffectResult:
        return cls(ok=False, detail=detail)

    @classmethod
    def skipped(cls, reason: str) -> SideEffectResult:
        return cls(ok=True, detail=reason)


@dataclass(slots=True)
class ImportReport:
    """Summary returned to the caller of one reconciliation run."""

    total_rows: int
    run_at: datetime
    success_count: int = 0
    fail_count: int = 0
    errors: list[RowError] = field(default_factory=list["RowError"])
    import_log_id: UUID | None = None
    states: dict[int, RowState] = field(default_factory=dict[int, RowState])
    fallbacks: dict[int, FallbackOutcome] = field(default_factory=dict[int, FallbackOutcome])
    duplicate_notes: SideEffectResult = field(
        default_factory=lambda: SideEffectResult.skipped("not attempted")
    )
    import_log: SideEffectResult = field(
        default_factory=lambda: SideEffectResult.skipped("not attempted")
    )

    @property
    def skipped_count(self) -> int:
        return sum(1 for state in self.states.values() if state is RowState.SKIPPED_DUPLICATE)

    def record(self, index: int, state: RowState, error: RowError | None = None) -> None:
        self.states[index] = state
        if state is RowState.SUCCEEDED:
            self.success_count += 1
        elif state.is_failure:
            self.fail_count += 1
        if error is not None:
            self.errors.append(error)

    def to_dict(self) -> dict[str, object]:
        return {
            "totalRows": self.total_rows,
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "errors": [error.to_dict() for error in self.errors],
            "importLogId": str(self.import_log_id) if self.import_log_id else None,
        }
