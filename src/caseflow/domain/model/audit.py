"""Audit records: import run summaries and case notes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import uuid4

from caseflow.domain.model.case import utcnow

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


@dataclass(eq=False, kw_only=True)
class ImportLog:
    """Summary of one reconciliation run.

    ``created_at`` is the run timestamp shared by every case written during the
    run; it is the join key back to the run's FAILED cases.
    """

    id: UUID = field(default_factory=uuid4)
    run_by: str
    total_rows: int
    success_count: int
    fail_count: int
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.success_count + self.fail_count > self.total_rows:
            raise ValueError(
                "success_count + fail_count exceeds total_rows: "
                f"{self.success_count} + {self.fail_count} > {self.total_rows}"
            )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "runBy": self.run_by,
            "totalRows": self.total_rows,
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(eq=False, kw_only=True)
class Note:
    """Free-text annotation on a case, user-entered or system-generated."""

    id: UUID = field(default_factory=uuid4)
    case_id: UUID
    content: str
    author_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "caseId": str(self.case_id),
            "authorId": self.author_id,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
        }
