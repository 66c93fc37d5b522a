"""Repository implementations backed by SQLAlchemy sessions.

Every write runs inside its own SAVEPOINT so that a failing statement only
discards that statement's changes; the surrounding transaction stays usable.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Final

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from caseflow.adapters.sqlalchemy.mappings import case_table, import_log_table, note_table
from caseflow.domain.model import Case, CaseStatus, ImportLog, Note
from caseflow.domain.ports.persistence import (
    CascadeDeleteResult,
    ConstraintViolationError,
    KeyConflictError,
    PersistenceError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping
    from datetime import datetime, timedelta

    from sqlalchemy import Table
    from sqlalchemy.orm import Session

    from caseflow.domain.model import CaseFields
    from caseflow.domain.ports.persistence import CaseCursor, CaseQuery

# Columns an upsert or partial edit may overwrite.
MUTABLE_CASE_COLUMNS: Final[frozenset[str]] = frozenset(
    {
        "applicant_name",
        "dob",
        "email",
        "phone",
        "category",
        "priority",
        "status",
        "imported_by",
        "imported_at",
        "updated_at",
        "error_message",
    }
)


def _is_key_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "case_key" in message and ("unique" in message or "duplicate" in message)


def translate_error(exc: SQLAlchemyError, *, case_key: str | None = None) -> PersistenceError:
    """Map a driver error onto the domain's persistence taxonomy."""

    if isinstance(exc, IntegrityError):
        if case_key is not None and _is_key_conflict(exc):
            return KeyConflictError(case_key)
        return ConstraintViolationError(str(exc.orig))
    return PersistenceError(str(exc))


@contextmanager
def savepoint(session: Session, *, case_key: str | None = None) -> Iterator[None]:
    try:
        with session.begin_nested():
            yield
    except SQLAlchemyError as exc:
        raise translate_error(exc, case_key=case_key) from exc


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlAlchemyCaseRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert_by_key(
        self,
        case_key: str,
        fields: CaseFields,
        *,
        status: CaseStatus,
        imported_by: str | None,
        imported_at: datetime,
    ) -> Case:
        values: dict[str, object] = {
            "id": uuid.uuid4(),
            "case_key": case_key,
            **fields.as_dict(),
            "status": status,
            "imported_by": imported_by,
            "imported_at": imported_at,
            "updated_at": imported_at,
            "error_message": None,
        }
        insert = self._dialect_insert()
        stmt = insert(case_table).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[case_table.c.case_key],
            set_={name: stmt.excluded[name] for name in values if name in MUTABLE_CASE_COLUMNS},
        ).returning(case_table.c.id)

        with savepoint(self.session):
            case_id = self.session.execute(stmt).scalar_one()

        case = self.session.get(Case, case_id, populate_existing=True)
        if case is None:
            raise PersistenceError(f"Upserted case {case_key} could not be reloaded")
        return case

    def create(self, case: Case) -> Case:
        with savepoint(self.session, case_key=case.case_key):
            self.session.add(case)
            self.session.flush()
        return case

    def find_by_key(self, case_key: str) -> Case | None:
        stmt = select(Case).where(case_table.c.case_key == case_key)
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, case_id: uuid.UUID) -> Case | None:
        return self.session.get(Case, case_id)

    def query(
        self,
        filters: CaseQuery,
        *,
        limit: int,
        after: CaseCursor | None = None,
    ) -> list[Case]:
        columns = case_table.c
        stmt = select(Case)
        if filters.status is not None:
            stmt = stmt.where(columns.status == filters.status)
        if filters.category is not None:
            stmt = stmt.where(columns.category == filters.category)
        if filters.priority is not None:
            stmt = stmt.where(columns.priority == filters.priority)
        if filters.imported_from is not None:
            stmt = stmt.where(columns.imported_at >= filters.imported_from)
        if filters.imported_to is not None:
            stmt = stmt.where(columns.imported_at <= filters.imported_to)
        if filters.imported_by is not None:
            stmt = stmt.where(columns.imported_by == filters.imported_by)
        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            stmt = stmt.where(
                or_(
                    columns.case_key.ilike(pattern, escape="\\"),
                    columns.applicant_name.ilike(pattern, escape="\\"),
                )
            )
        if after is not None:
            stmt = stmt.where(
                or_(
                    columns.imported_at < after.imported_at,
                    and_(columns.imported_at == after.imported_at, columns.id < after.case_id),
                )
            )
        stmt = stmt.order_by(columns.imported_at.desc(), columns.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def update(self, case: Case, changes: Mapping[str, object]) -> Case:
        unknown = sorted(set(changes) - MUTABLE_CASE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown case attributes: {', '.join(unknown)}")
        with savepoint(self.session):
            for name, value in changes.items():
                setattr(case, name, value)
            self.session.flush()
        return case

    def failed_in_window(self, start: datetime, end: datetime) -> list[Case]:
        stmt = (
            select(Case)
            .where(case_table.c.status == CaseStatus.FAILED)
            .where(case_table.c.imported_at.between(start, end))
            .order_by(case_table.c.case_key)
        )
        return list(self.session.execute(stmt).scalars())

    def _dialect_insert(self) -> Callable[[Table], sqlite.Insert | postgresql.Insert]:
        name = self.session.get_bind().dialect.name
        if name == "sqlite":
            return sqlite.insert
        if name == "postgresql":
            return postgresql.insert
        raise PersistenceError(f"Atomic upsert is not supported on dialect {name!r}")


class SqlAlchemyImportLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, log: ImportLog) -> ImportLog:
        with savepoint(self.session):
            self.session.add(log)
            self.session.flush()
        return log

    def get(self, log_id: uuid.UUID) -> ImportLog | None:
        return self.session.get(ImportLog, log_id)

    def list_runs(self, *, run_by: str | None = None) -> list[ImportLog]:
        stmt = select(ImportLog).order_by(import_log_table.c.created_at.desc())
        if run_by is not None:
            stmt = stmt.where(import_log_table.c.run_by == run_by)
        return list(self.session.execute(stmt).scalars())

    def delete_cascade(self, log: ImportLog, *, window: timedelta) -> CascadeDeleteResult:
        with savepoint(self.session):
            case_ids = list(
                self.session.execute(
                    select(case_table.c.id).where(
                        case_table.c.status == CaseStatus.FAILED,
                        case_table.c.imported_at.between(
                            log.created_at - window, log.created_at + window
                        ),
                    )
                ).scalars()
            )
            note_ids = list(
                self.session.execute(
                    select(note_table.c.id).where(note_table.c.case_id.in_(case_ids))
                ).scalars()
            )
            # children first
            self.session.execute(
                delete(Note)
                .where(note_table.c.id.in_(note_ids))
                .execution_options(synchronize_session="fetch")
            )
            self.session.execute(
                delete(Case)
                .where(case_table.c.id.in_(case_ids))
                .execution_options(synchronize_session="fetch")
            )
            self.session.execute(
                delete(ImportLog)
                .where(import_log_table.c.id == log.id)
                .execution_options(synchronize_session="fetch")
            )

        return CascadeDeleteResult(
            import_log_id=log.id,
            deleted_case_count=len(case_ids),
            deleted_note_count=len(note_ids),
        )


class SqlAlchemyNoteRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, note: Note) -> Note:
        with savepoint(self.session):
            self.session.add(note)
            self.session.flush()
        return note

    def list_for_case(self, case_id: uuid.UUID) -> list[Note]:
        stmt = (
            select(Note)
            .where(note_table.c.case_id == case_id)
            .order_by(note_table.c.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars())
