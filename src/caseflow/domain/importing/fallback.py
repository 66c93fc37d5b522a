"""Persistence of failed rows under synthetic fallback keys.

A failed row is never written under its own business key, which could collide
with or mask a legitimate case. It is stored as a FAILED case keyed
``FAILED-<run epoch ms>-<batch>-<offset>``; the original key survives only in
``error_message``.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final
from uuid import uuid4

from caseflow.domain.model import Case, CaseStatus
from caseflow.domain.ports.persistence import KeyConflictError, PersistenceError

from .contracts import FallbackOutcome, FallbackStatus

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from caseflow.domain.model import CaseFields
    from caseflow.domain.ports.persistence import CaseRepository

FALLBACK_PREFIX: Final[str] = "FAILED"
MISSING_KEY_LABEL: Final[str] = "(missing)"
MAX_KEY_ATTEMPTS: Final[int] = 2
SUFFIX_LENGTH: Final[int] = 6

log = getLogger(__name__)


def random_suffix() -> str:
    return uuid4().hex[:SUFFIX_LENGTH]


def run_stamp(run_at: datetime) -> int:
    """Run timestamp as epoch milliseconds."""
    return int(run_at.timestamp() * 1000)


def fallback_key(run_at: datetime, *, batch: int, offset: int, suffix: str | None = None) -> str:
    key = f"{FALLBACK_PREFIX}-{run_stamp(run_at)}-{batch}-{offset}"
    return f"{key}-{suffix}" if suffix else key


def failure_message(original_key: str | None, message: str) -> str:
    return f"case_id={original_key or MISSING_KEY_LABEL}: {message}"


@dataclass(slots=True)
class FallbackWriter:
    """Write FAILED case records with at most one suffixed retry on key conflict.

    ``fields`` carries whatever descriptive cells could be salvaged from the
    failed row so the record can be reviewed and corrected.
    """

    cases: CaseRepository
    run_at: datetime
    imported_by: str | None
    suffix_factory: Callable[[], str] = random_suffix

    def persist(
        self,
        *,
        batch: int,
        offset: int,
        original_key: str | None,
        message: str,
        fields: CaseFields | None = None,
    ) -> FallbackOutcome:
        suffix: str | None = None
        for attempt in range(1, MAX_KEY_ATTEMPTS + 1):
            key = fallback_key(self.run_at, batch=batch, offset=offset, suffix=suffix)
            try:
                self.cases.create(self._failed_case(key, original_key, message, fields))
            except KeyConflictError:
                if attempt == MAX_KEY_ATTEMPTS:
                    log.error(
                        "Fallback key %s collided again; failed row %r not stored",
                        key,
                        original_key,
                    )
                    return FallbackOutcome(
                        status=FallbackStatus.PERSIST_FATAL,
                        attempts=attempt,
                        detail=f"fallback key conflict: {key}",
                    )
                log.warning("Fallback key %s already exists; retrying with suffix", key)
                suffix = self.suffix_factory()
                continue
            except PersistenceError as exc:
                log.exception("Could not store failed row %r under %s", original_key, key)
                return FallbackOutcome(
                    status=FallbackStatus.PERSIST_FATAL,
                    attempts=attempt,
                    detail=str(exc),
                )
            status = FallbackStatus.STORED if suffix is None else FallbackStatus.STORED_WITH_SUFFIX
            return FallbackOutcome(status=status, case_key=key, attempts=attempt)
        raise AssertionError("unreachable: fallback loop exhausted without outcome")

    def _failed_case(
        self,
        key: str,
        original_key: str | None,
        message: str,
        fields: CaseFields | None,
    ) -> Case:
        return Case(
            **(fields.as_dict() if fields else {}),
            case_key=key,
            status=CaseStatus.FAILED,
            imported_by=self.imported_by,
            imported_at=self.run_at,
            updated_at=self.run_at,
            error_message=failure_message(original_key, message),
        )
