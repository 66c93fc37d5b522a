"""Application orchestration entry points."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from caseflow.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyCaseUnitOfWork,
    is_started,
    startup,
)
from caseflow.config.importing import get_import_config
from caseflow.domain import case_management, import_logs
from caseflow.domain.importing import ReconciliationEngine

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from caseflow.config.importing import ImportConfig
    from caseflow.domain.case_management import CaseDetail, CasePage
    from caseflow.domain.import_logs import ImportLogReport
    from caseflow.domain.importing import ImportReport
    from caseflow.domain.model import CallerIdentity, Case, ImportLog, Note
    from caseflow.domain.ports.persistence import CascadeDeleteResult, CaseQuery
    from caseflow.domain.ports.unit_of_work import CaseUnitOfWorkFactory


log = getLogger(__name__)


def _resolve_unit_of_work(
    unit_of_work_factory: CaseUnitOfWorkFactory | None,
) -> CaseUnitOfWorkFactory:
    if unit_of_work_factory is not None:
        return unit_of_work_factory
    if not is_started():
        startup()
    return SqlAlchemyCaseUnitOfWork


def import_cases(
    payload: object,
    *,
    caller: CallerIdentity | None,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
    config: ImportConfig | None = None,
) -> ImportReport:
    """Reconcile one batch of raw case rows against the case store."""

    engine = ReconciliationEngine(
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
        config=config or get_import_config(),
    )
    report = engine.reconcile(payload, caller)
    if not report.duplicate_notes.ok:
        log.warning("Duplicate notes incomplete: %s", report.duplicate_notes.detail)
    if not report.import_log.ok:
        log.warning("Import log not recorded: %s", report.import_log.detail)
    return report


def list_import_logs(
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
) -> list[ImportLog]:
    return import_logs.list_import_logs(
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
    )


def get_import_report(
    log_id: UUID,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
    config: ImportConfig | None = None,
) -> ImportLogReport:
    effective_config = config or get_import_config()
    return import_logs.get_import_report(
        log_id,
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
        window=effective_config.cascade_window,
    )


def delete_import_log(
    log_id: UUID,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
    config: ImportConfig | None = None,
) -> CascadeDeleteResult:
    effective_config = config or get_import_config()
    return import_logs.delete_import_log(
        log_id,
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
        window=effective_config.cascade_window,
    )


def list_cases(
    *,
    caller: CallerIdentity,
    filters: CaseQuery | None = None,
    limit: int = case_management.DEFAULT_PAGE_SIZE,
    cursor: str | None = None,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
) -> CasePage:
    return case_management.list_cases(
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
        filters=filters,
        limit=limit,
        cursor=cursor,
    )


def get_case_detail(
    case_key: str,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
) -> CaseDetail:
    return case_management.get_case_detail(
        case_key,
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
    )


def update_case(
    case_key: str,
    changes: Mapping[str, object],
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
    config: ImportConfig | None = None,
) -> Case:
    effective_config = config or get_import_config()
    return case_management.update_case(
        case_key,
        changes,
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
        priority_policy=effective_config.priority_policy,
    )


def add_note(
    case_key: str,
    content: str,
    *,
    caller: CallerIdentity,
    unit_of_work_factory: CaseUnitOfWorkFactory | None = None,
) -> Note:
    return case_management.add_note(
        case_key,
        content,
        caller=caller,
        unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory),
    )
