"""Application services for reading and editing individual cases."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from logging import getLogger
from operator import attrgetter
from typing import TYPE_CHECKING, Final
from uuid import UUID

from pydantic import ValidationError

from caseflow.config.importing import PriorityPolicy
from caseflow.domain.errors import (
    CaseNotFoundError,
    CaseUpdateError,
    InvalidCursorError,
    NoteError,
    PermissionDeniedError,
)
from caseflow.domain.importing.validation import (
    POLICY_CONTEXT_KEY,
    CaseFieldsModel,
    format_errors,
)
from caseflow.domain.model import Note, utcnow
from caseflow.domain.ports.persistence import CaseCursor, CaseQuery

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from caseflow.domain.model import CallerIdentity, Case, CaseStatus
    from caseflow.domain.ports.unit_of_work import CaseUnitOfWork, CaseUnitOfWorkFactory

DEFAULT_PAGE_SIZE: Final[int] = 50
MAX_PAGE_SIZE: Final[int] = 200

# Accepted spellings for each editable field.
EDITABLE_FIELDS: Final[dict[str, str]] = {
    "applicant_name": "applicant_name",
    "applicantName": "applicant_name",
    "email": "email",
    "phone": "phone",
    "category": "category",
    "status": "status",
    "dob": "dob",
    "priority": "priority",
}

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CasePage:
    items: list[Case]
    next_cursor: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "items": [case.to_dict() for case in self.items],
            "nextCursor": self.next_cursor,
        }


class TimelineKind(StrEnum):
    IMPORTED = "imported"
    STATUS = "status"
    NOTE = "note"


@dataclass(frozen=True, slots=True, kw_only=True)
class TimelineEvent:
    kind: TimelineKind
    at: datetime | None
    actor_id: str | None = None
    status: CaseStatus | None = None
    content: str | None = None
    note_id: UUID | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.kind.value,
            "date": self.at.isoformat() if self.at else None,
            "by": self.actor_id,
            "status": self.status.value if self.status else None,
            "content": self.content,
            "noteId": str(self.note_id) if self.note_id else None,
        }


@dataclass(frozen=True, slots=True)
class CaseDetail:
    case: Case
    notes: list[Note] = field(default_factory=list["Note"])
    timeline: list[TimelineEvent] = field(default_factory=list["TimelineEvent"])

    def to_dict(self) -> dict[str, object]:
        return {
            "case": self.case.to_dict(),
            "notes": [note.to_dict() for note in self.notes],
            "timeline": [event.to_dict() for event in self.timeline],
        }


def encode_cursor(cursor: CaseCursor) -> str:
    payload = json.dumps(
        {"importedAt": cursor.imported_at.isoformat(), "id": str(cursor.case_id)},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


def decode_cursor(token: str) -> CaseCursor:
    padded = token + "=" * (-len(token) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return CaseCursor(
            imported_at=datetime.fromisoformat(data["importedAt"]),
            case_id=UUID(data["id"]),
        )
    except (binascii.Error, KeyError, TypeError, ValueError) as exc:
        raise InvalidCursorError(f"Malformed cursor: {token!r}") from exc


def clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_PAGE_SIZE))


def list_cases(
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
    filters: CaseQuery | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: str | None = None,
) -> CasePage:
    """Return one page of cases visible to ``caller``, newest import first."""

    effective = filters or CaseQuery()
    if not caller.is_elevated:
        effective = replace(effective, imported_by=caller.user_id)
    after = decode_cursor(cursor) if cursor else None
    page_size = clamp_limit(limit)

    with unit_of_work_factory() as uow:
        rows = list(uow.repositories.cases.query(effective, limit=page_size + 1, after=after))

    items = rows[:page_size]
    next_cursor = None
    if len(rows) > page_size:
        last = items[-1]
        next_cursor = encode_cursor(CaseCursor(imported_at=last.imported_at, case_id=last.id))
    return CasePage(items=items, next_cursor=next_cursor)


def get_case_detail(
    case_key: str,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
) -> CaseDetail:
    with unit_of_work_factory() as uow:
        case = _visible_case(uow, case_key, caller)
        notes = list(uow.repositories.notes.list_for_case(case.id))
    notes.sort(key=lambda note: note.created_at, reverse=True)
    return CaseDetail(case=case, notes=notes, timeline=build_timeline(case, notes))


def build_timeline(case: Case, notes: Sequence[Note]) -> list[TimelineEvent]:
    """Import event, status snapshot and one event per note, newest first.

    Events without a date sort last.
    """

    events = [
        TimelineEvent(kind=TimelineKind.IMPORTED, at=case.imported_at, actor_id=case.imported_by),
        TimelineEvent(kind=TimelineKind.STATUS, at=case.updated_at, status=case.status),
    ]
    events.extend(
        TimelineEvent(
            kind=TimelineKind.NOTE,
            at=note.created_at,
            actor_id=note.author_id,
            content=note.content,
            note_id=note.id,
        )
        for note in notes
    )
    dated = sorted(
        (event for event in events if event.at is not None),
        key=attrgetter("at"),
        reverse=True,
    )
    undated = [event for event in events if event.at is None]
    return dated + undated


def update_case(
    case_key: str,
    changes: Mapping[str, object],
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
    priority_policy: PriorityPolicy = PriorityPolicy.COERCE,
    clock: Callable[[], datetime] = utcnow,
) -> Case:
    """Apply a sparse edit; fields not named in ``changes`` stay untouched."""

    validated = validate_changes(changes, priority_policy=priority_policy)

    with unit_of_work_factory() as uow:
        cases = uow.repositories.cases
        case = cases.find_by_key(case_key)
        if case is None:
            raise CaseNotFoundError(case_key)
        if not caller.may_act_for(case.imported_by):
            raise PermissionDeniedError(
                f"User {caller.user_id} may not edit case {case_key}"
            )
        updated = cases.update(case, {**validated, "updated_at": clock()})
        uow.commit()

    log.info("Case %s updated by %s: %s", case_key, caller.user_id, ", ".join(sorted(validated)))
    return updated


def validate_changes(
    changes: Mapping[str, object],
    *,
    priority_policy: PriorityPolicy = PriorityPolicy.COERCE,
) -> dict[str, object]:
    """Map edit keys to case attributes and validate their values."""

    unknown = sorted(key for key in changes if key not in EDITABLE_FIELDS)
    if unknown:
        raise CaseUpdateError(f"Fields not editable: {', '.join(unknown)}")
    if not changes:
        raise CaseUpdateError("No fields to update")

    mapped = {EDITABLE_FIELDS[key]: value for key, value in changes.items()}
    try:
        model = CaseFieldsModel.model_validate(
            mapped, context={POLICY_CONTEXT_KEY: priority_policy}
        )
    except ValidationError as exc:
        raise CaseUpdateError(format_errors(exc.errors())) from exc

    values = {name: getattr(model, name) for name in model.model_fields_set}
    if "status" in values and values["status"] is None:
        raise CaseUpdateError("status cannot be cleared")
    return values


def add_note(
    case_key: str,
    content: str,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
    clock: Callable[[], datetime] = utcnow,
) -> Note:
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        raise NoteError("Note content must not be empty")

    with unit_of_work_factory() as uow:
        case = _visible_case(uow, case_key, caller)
        note = uow.repositories.notes.create(
            Note(case_id=case.id, author_id=caller.user_id, content=text, created_at=clock())
        )
        uow.commit()
    return note


def _visible_case(uow: CaseUnitOfWork, case_key: str, caller: CallerIdentity) -> Case:
    case = uow.repositories.cases.find_by_key(case_key)
    if case is None:
        raise CaseNotFoundError(case_key)
    if not caller.is_elevated and case.imported_by != caller.user_id:
        # hidden cases look absent to non-elevated callers
        raise CaseNotFoundError(case_key)
    return case
