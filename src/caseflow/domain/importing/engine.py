"""Batch reconciliation of imported applicant rows against the case store.

One call to ``ReconciliationEngine.reconcile`` is one run:

1. extract the row list from the payload (``FatalInputError`` if impossible)
2. order rows by business key and mark superseded duplicates
3. walk the ordered rows in batches; every row ends SKIPPED_DUPLICATE,
   VALIDATION_FAILED, PERSIST_FAILED or SUCCEEDED
4. commit once per batch
5. attach duplicate notes and record the import log, both best effort
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

from caseflow.config.importing import ImportConfig
from caseflow.domain.model import CaseStatus, utcnow
from caseflow.domain.ports.persistence import PersistenceError

from .contracts import (
    FatalInputError,
    ImportReport,
    PersistenceUnavailableError,
    RowError,
    RowState,
)
from .fallback import FallbackWriter
from .ordering import normalize_rows
from .recording import attach_duplicate_notes, record_import_log
from .validation import InvalidRow, salvage_fields, validate_row

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from datetime import datetime

    from caseflow.domain.model import CallerIdentity, Case, CaseFields
    from caseflow.domain.ports.unit_of_work import CaseUnitOfWork, CaseUnitOfWorkFactory

    from .ordering import OrderedRow

PAYLOAD_ROWS_KEY: Final[str] = "cases"
DEFAULT_SUCCESS_STATUS: Final[CaseStatus] = CaseStatus.COMPLETED

log = getLogger(__name__)


def truncate_to_millis(moment: datetime) -> datetime:
    return moment.replace(microsecond=moment.microsecond - moment.microsecond % 1000)


def extract_rows(payload: object) -> Sequence[object]:
    """Return the row list of a bare list or a ``{"cases": [...]}`` wrapper."""

    if isinstance(payload, Mapping):
        payload = payload.get(PAYLOAD_ROWS_KEY)
    if isinstance(payload, Sequence) and not isinstance(payload, str | bytes | bytearray):
        return payload
    raise FatalInputError(
        f"Expected a list of rows or a mapping with a {PAYLOAD_ROWS_KEY!r} list"
    )


def duplicate_message(case_key: str) -> str:
    return f"Duplicate case_id {case_key!r} in file; a later row takes precedence"


def iter_batches(rows: Sequence[OrderedRow], size: int) -> Iterator[list[OrderedRow]]:
    for start in range(0, len(rows), size):
        yield list(rows[start : start + size])


@dataclass(slots=True)
class _RunState:
    report: ImportReport
    caller: CallerIdentity | None
    authoritative: dict[str, Case] = field(default_factory=dict[str, "Case"])

    @property
    def run_at(self) -> datetime:
        return self.report.run_at

    @property
    def imported_by(self) -> str | None:
        return self.caller.user_id if self.caller else None


@dataclass(slots=True)
class ReconciliationEngine:
    """Reconcile one import payload per ``reconcile`` call."""

    unit_of_work_factory: CaseUnitOfWorkFactory
    config: ImportConfig = field(default_factory=ImportConfig)
    clock: Callable[[], datetime] = utcnow

    def reconcile(self, payload: object, caller: CallerIdentity | None) -> ImportReport:
        rows = extract_rows(payload)
        normalized = normalize_rows(rows)
        run_at = truncate_to_millis(self.clock())
        state = _RunState(report=ImportReport(total_rows=len(rows), run_at=run_at), caller=caller)

        log.info(
            "Starting import run at %s: %d row(s), batch size %d, caller %s",
            run_at.isoformat(),
            len(rows),
            self.config.batch_size,
            state.imported_by or "<none>",
        )

        with self.unit_of_work_factory() as uow:
            fallback = FallbackWriter(
                cases=uow.repositories.cases,
                run_at=run_at,
                imported_by=state.imported_by,
            )
            for batch_number, batch in enumerate(
                iter_batches(normalized.ordered, self.config.batch_size)
            ):
                for row in batch:
                    self._process_row(uow, row, state, fallback)
                self._commit_batch(uow, batch_number)

            state.report.duplicate_notes = attach_duplicate_notes(
                uow,
                duplicate_counts=normalized.duplicate_counts,
                authoritative=state.authoritative,
                caller=caller,
                run_at=run_at,
            )
            state.report.import_log = record_import_log(uow, state.report, caller=caller)

        report = state.report
        log.info(
            "Finished import run at %s: %d succeeded, %d failed, %d skipped as duplicates",
            run_at.isoformat(),
            report.success_count,
            report.fail_count,
            report.skipped_count,
        )
        return report

    def _process_row(
        self,
        uow: CaseUnitOfWork,
        row: OrderedRow,
        state: _RunState,
        fallback: FallbackWriter,
    ) -> None:
        report = state.report
        if row.superseded:
            # superseded rows always carry a key
            message = duplicate_message(row.case_key or "")
            report.record(
                row.index,
                RowState.SKIPPED_DUPLICATE,
                RowError(row.index, row.case_key, message, RowState.SKIPPED_DUPLICATE),
            )
            return

        result = validate_row(row.raw, priority_policy=self.config.priority_policy)
        if isinstance(result, InvalidRow):
            log.debug("Row %d (%r) failed validation: %s", row.index, row.case_key, result.message)
            self._fail(
                row,
                RowState.VALIDATION_FAILED,
                result.message,
                state,
                fallback,
                fields=salvage_fields(row.raw),
            )
            return

        try:
            case = uow.repositories.cases.upsert_by_key(
                result.case_key,
                result.fields,
                status=result.status or DEFAULT_SUCCESS_STATUS,
                imported_by=state.imported_by,
                imported_at=state.run_at,
            )
        except PersistenceError as exc:
            log.debug("Row %d (%r) failed to persist: %s", row.index, result.case_key, exc)
            self._fail(row, RowState.PERSIST_FAILED, str(exc), state, fallback)
            return

        state.authoritative[result.case_key] = case
        report.record(row.index, RowState.SUCCEEDED)

    def _fail(
        self,
        row: OrderedRow,
        row_state: RowState,
        message: str,
        state: _RunState,
        fallback: FallbackWriter,
        *,
        fields: CaseFields | None = None,
    ) -> None:
        error = RowError(row.index, row.case_key, message, row_state)
        state.report.record(row.index, row_state, error)
        batch, offset = divmod(row.position, self.config.batch_size)
        state.report.fallbacks[row.index] = fallback.persist(
            batch=batch,
            offset=offset,
            original_key=row.case_key,
            message=message,
            fields=fields,
        )

    @staticmethod
    def _commit_batch(uow: CaseUnitOfWork, batch_number: int) -> None:
        try:
            uow.commit()
        except PersistenceError as exc:
            log.exception("Commit of batch %d failed; aborting run", batch_number)
            raise PersistenceUnavailableError(
                f"Could not commit batch {batch_number}: {exc}"
            ) from exc
