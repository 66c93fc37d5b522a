"""Applicant case aggregate and the closed field record produced by validation."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from caseflow.domain.model.enums import CaseStatus

if TYPE_CHECKING:
    from datetime import date


def new_id() -> UUID:
    return uuid4()


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class CaseFields:
    """Descriptive attributes of a case, already trimmed and coerced."""

    applicant_name: str | None = None
    dob: date | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    priority: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(eq=False, kw_only=True)
class Case:
    """One applicant case, keyed by its business ``case_key``."""

    id: UUID = field(default_factory=new_id)
    case_key: str
    applicant_name: str | None = None
    dob: date | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    priority: int | None = None
    status: CaseStatus = CaseStatus.NEW
    imported_by: str | None = None
    imported_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    error_message: str | None = None

    @property
    def is_failed(self) -> bool:
        return self.status is CaseStatus.FAILED

    def to_dict(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "caseKey": self.case_key,
            "applicantName": self.applicant_name,
            "dob": self.dob.isoformat() if self.dob else None,
            "email": self.email,
            "phone": self.phone,
            "category": self.category,
            "priority": self.priority,
            "status": self.status.value,
            "importedBy": self.imported_by,
            "importedAt": self.imported_at.isoformat(),
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "errorMessage": self.error_message,
        }
