"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    CascadeDeleteResult,
    CaseCursor,
    CaseQuery,
    CaseRepository,
    ConstraintViolationError,
    ImportLogRepository,
    KeyConflictError,
    NoteRepository,
    PersistenceError,
)
from .unit_of_work import (
    CaseRepositories,
    CaseUnitOfWork,
    CaseUnitOfWorkFactory,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "CaseCursor",
    "CaseQuery",
    "CaseRepositories",
    "CaseRepository",
    "CaseUnitOfWork",
    "CaseUnitOfWorkFactory",
    "CascadeDeleteResult",
    "ConstraintViolationError",
    "ImportLogRepository",
    "KeyConflictError",
    "NoteRepository",
    "PersistenceError",
    "RepositoryCollection",
    "UnitOfWork",
]
