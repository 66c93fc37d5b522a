"""Public domain model surface."""

from __future__ import annotations

from caseflow.domain.model.audit import ImportLog, Note
from caseflow.domain.model.case import Case, CaseFields, new_id, utcnow
from caseflow.domain.model.enums import MAX_PRIORITY, MIN_PRIORITY, CaseStatus, Priority, Role
from caseflow.domain.model.identity import CallerIdentity

__all__ = [
    "MAX_PRIORITY",
    "MIN_PRIORITY",
    "CallerIdentity",
    "Case",
    "CaseFields",
    "CaseStatus",
    "ImportLog",
    "Note",
    "Priority",
    "Role",
    "new_id",
    "utcnow",
]
