"""SQLAlchemy mapping metadata for the caseflow domain model."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers

from caseflow.domain.model import Case, CaseStatus, ImportLog, Note

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

case_table = Table(
    "cases",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("case_key", String, nullable=False),
    Column("applicant_name", String, nullable=True),
    Column("dob", Date, nullable=True),
    Column("email", String, nullable=True),
    Column("phone", String, nullable=True),
    Column("category", String, nullable=True),
    Column("priority", Integer, nullable=True),
    Column(
        "status",
        Enum(CaseStatus, native_enum=False, length=16),
        nullable=False,
        default=CaseStatus.NEW,
    ),
    Column("imported_by", String, nullable=True),
    Column("imported_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=True),
    Column("error_message", Text, nullable=True),
    UniqueConstraint("case_key"),
    Index(None, "status"),
    Index(None, "imported_by"),
    Index(None, "imported_at"),
)

import_log_table = Table(
    "import_logs",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("run_by", String, nullable=False),
    Column("total_rows", Integer, nullable=False),
    Column("success_count", Integer, nullable=False),
    Column("fail_count", Integer, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Index(None, "run_by"),
    Index(None, "created_at"),
)

note_table = Table(
    "notes",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "case_id",
        UUIDColumnType,
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("author_id", String, nullable=True),
    Column("content", Text, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Index(None, "case_id"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Case, case_table)
    mapper_registry.map_imperatively(ImportLog, import_log_table)
    mapper_registry.map_imperatively(Note, note_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
