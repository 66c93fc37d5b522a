"""SQLAlchemy adapter package for caseflow."""

from __future__ import annotations

from .mappings import (
    case_table,
    create_all_tables,
    import_log_table,
    mapper_registry,
    note_table,
    start_mappers,
)
from .repositories import (
    SqlAlchemyCaseRepository,
    SqlAlchemyImportLogRepository,
    SqlAlchemyNoteRepository,
)
from .unit_of_work import (
    SqlAlchemyCaseUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCaseRepository",
    "SqlAlchemyCaseUnitOfWork",
    "SqlAlchemyImportLogRepository",
    "SqlAlchemyNoteRepository",
    "StartupError",
    "case_table",
    "configured_engine",
    "create_all_tables",
    "import_log_table",
    "is_started",
    "mapper_registry",
    "note_table",
    "shutdown",
    "start_mappers",
    "startup",
]
