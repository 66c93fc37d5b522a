"""Best-effort audit writes that follow a reconciliation run.

Both writers return a ``SideEffectResult``; neither can change the run's counts
or error list, and neither lets an exception escape.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Final

from caseflow.domain.model import ImportLog, Note
from caseflow.domain.ports.persistence import PersistenceError

from .contracts import SideEffectResult

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from caseflow.domain.model import CallerIdentity, Case
    from caseflow.domain.ports.unit_of_work import CaseUnitOfWork

    from .contracts import ImportReport

DUPLICATE_NOTE_TEMPLATE: Final[str] = (
    "Duplicate rows detected during import: {count} earlier occurrence(s) ignored"
)

log = getLogger(__name__)


def duplicate_note_content(count: int) -> str:
    return DUPLICATE_NOTE_TEMPLATE.format(count=count)


def attach_duplicate_notes(
    uow: CaseUnitOfWork,
    *,
    duplicate_counts: Mapping[str, int],
    authoritative: Mapping[str, Case],
    caller: CallerIdentity | None,
    run_at: datetime,
) -> SideEffectResult:
    """Annotate each surviving case with the number of ignored earlier rows.

    Keys whose authoritative row did not succeed get no note: the case stored
    under that key, if any, does not reflect this file.
    """

    if not duplicate_counts:
        return SideEffectResult.skipped("no duplicates")

    attached = 0
    failures: list[str] = []
    for case_key, count in sorted(duplicate_counts.items()):
        case = authoritative.get(case_key)
        if case is None:
            log.info("No authoritative case for duplicated key %r; note skipped", case_key)
            continue
        note = Note(
            case_id=case.id,
            author_id=caller.user_id if caller else None,
            content=duplicate_note_content(count),
            created_at=run_at,
        )
        try:
            uow.repositories.notes.create(note)
        except PersistenceError as exc:
            log.warning("Could not attach duplicate note to %r: %s", case_key, exc)
            failures.append(case_key)
            continue
        attached += 1

    try:
        uow.commit()
    except PersistenceError as exc:
        log.exception("Could not commit duplicate notes")
        uow.rollback()
        return SideEffectResult.failure(f"commit failed: {exc}")

    if failures:
        return SideEffectResult.failure(
            f"{attached} note(s) attached; failed for: {', '.join(failures)}"
        )
    return SideEffectResult.success(f"{attached} note(s) attached")


def record_import_log(
    uow: CaseUnitOfWork,
    report: ImportReport,
    *,
    caller: CallerIdentity | None,
) -> SideEffectResult:
    """Persist the run summary; a run without a caller is never logged."""

    if caller is None:
        log.warning(
            "Import run at %s has no caller identity; import log not recorded",
            report.run_at.isoformat(),
        )
        return SideEffectResult.skipped("no caller identity")

    import_log = ImportLog(
        run_by=caller.user_id,
        total_rows=report.total_rows,
        success_count=report.success_count,
        fail_count=report.fail_count,
        created_at=report.run_at,
    )
    try:
        uow.repositories.import_logs.create(import_log)
        uow.commit()
    except PersistenceError as exc:
        log.exception("Failed to create import log")
        uow.rollback()
        return SideEffectResult.failure(str(exc))

    report.import_log_id = import_log.id
    return SideEffectResult.success(str(import_log.id))
