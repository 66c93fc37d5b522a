"""Application services for import run history: listing, reports and deletion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Final

from caseflow.domain.errors import ImportLogNotFoundError, PermissionDeniedError

if TYPE_CHECKING:
    from uuid import UUID

    from caseflow.domain.model import CallerIdentity, Case, ImportLog
    from caseflow.domain.ports.persistence import CascadeDeleteResult
    from caseflow.domain.ports.unit_of_work import CaseUnitOfWork, CaseUnitOfWorkFactory

DEFAULT_CASCADE_WINDOW: Final[timedelta] = timedelta(seconds=5)

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ImportLogReport:
    """An import log with the FAILED cases written during its run."""

    log: ImportLog
    failed_cases: list[Case] = field(default_factory=list["Case"])

    def to_dict(self) -> dict[str, object]:
        return {
            "importLog": self.log.to_dict(),
            "failedRows": [case.to_dict() for case in self.failed_cases],
        }


def list_import_logs(
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
) -> list[ImportLog]:
    """Newest first; elevated callers see every run, others only their own."""

    run_by = None if caller.is_elevated else caller.user_id
    with unit_of_work_factory() as uow:
        logs = list(uow.repositories.import_logs.list_runs(run_by=run_by))
    logs.sort(key=lambda item: item.created_at, reverse=True)
    return logs


def get_import_report(
    log_id: UUID,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
    window: timedelta = DEFAULT_CASCADE_WINDOW,
) -> ImportLogReport:
    with unit_of_work_factory() as uow:
        import_log = _owned_log(uow, log_id, caller, action="view")
        failed = list(
            uow.repositories.cases.failed_in_window(
                import_log.created_at - window,
                import_log.created_at + window,
            )
        )
    return ImportLogReport(log=import_log, failed_cases=failed)


def delete_import_log(
    log_id: UUID,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory,
    window: timedelta = DEFAULT_CASCADE_WINDOW,
) -> CascadeDeleteResult:
    """Delete a run's log together with its FAILED cases and their notes.

    Cases the run upserted successfully are kept. The cascade is atomic: on
    failure nothing is removed and the storage error propagates.
    """

    with unit_of_work_factory() as uow:
        import_log = _owned_log(uow, log_id, caller, action="delete")
        result = uow.repositories.import_logs.delete_cascade(import_log, window=window)
        uow.commit()

    log.info(
        "Import log %s deleted by %s: %d failed case(s), %d note(s) removed",
        log_id,
        caller.user_id,
        result.deleted_case_count,
        result.deleted_note_count,
    )
    return result


def _owned_log(
    uow: CaseUnitOfWork,
    log_id: UUID,
    caller: CallerIdentity,
    *,
    action: str,
) -> ImportLog:
    import_log = uow.repositories.import_logs.get(log_id)
    if import_log is None:
        raise ImportLogNotFoundError(log_id)
    if not caller.may_act_for(import_log.run_by):
        raise PermissionDeniedError(
            f"User {caller.user_id} may not {action} import log {log_id}"
        )
    return import_log
