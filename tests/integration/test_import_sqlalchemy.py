from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import Insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from caseflow import app
from caseflow.adapters.sqlalchemy import case_table
from caseflow.config import ImportConfig
from caseflow.domain.errors import PermissionDeniedError
from caseflow.domain.importing import RowState
from caseflow.domain.model import CallerIdentity, Case, CaseStatus
from caseflow.domain.ports.persistence import CaseQuery

if TYPE_CHECKING:
    from collections.abc import Callable

    from caseflow.adapters.sqlalchemy.unit_of_work import SqlAlchemyCaseUnitOfWork

    UnitOfWorkFactory = Callable[[], SqlAlchemyCaseUnitOfWork]

FALLBACK_PATTERN = re.compile(r"^FAILED-\d+-\d+-\d+(-[0-9a-f]{6})?$")


def _all_cases(factory: UnitOfWorkFactory, admin: CallerIdentity) -> dict[str, Case]:
    page = app.list_cases(caller=admin, unit_of_work_factory=factory, limit=200)
    return {case.case_key: case for case in page.items}


def test_import_then_report_then_delete(
    sqlite_unit_of_work: UnitOfWorkFactory,
    operator: CallerIdentity,
    admin: CallerIdentity,
) -> None:
    rows = [
        {"case_id": "A1", "email": "bad"},
        {"case_id": "A2", "email": "a2@x.com", "priority": "high"},
    ]

    report = app.import_cases(
        rows, caller=operator, unit_of_work_factory=sqlite_unit_of_work, config=ImportConfig()
    )

    assert report.to_dict()["errors"] == [{"index": 0, "caseKey": "A1", "error": "Invalid email"}]
    assert (report.success_count, report.fail_count) == (1, 1)
    assert report.import_log_id is not None

    stored = _all_cases(sqlite_unit_of_work, admin)
    assert "A1" not in stored
    fallback_keys = [key for key in stored if key != "A2"]
    assert len(fallback_keys) == 1
    assert FALLBACK_PATTERN.match(fallback_keys[0])
    fallback = stored[fallback_keys[0]]
    assert fallback.status is CaseStatus.FAILED
    assert "A1" in fallback.error_message
    assert stored["A2"].priority == 3

    import_report = app.get_import_report(
        report.import_log_id, caller=operator, unit_of_work_factory=sqlite_unit_of_work
    )
    assert [case.case_key for case in import_report.failed_cases] == fallback_keys

    logs = app.list_import_logs(caller=operator, unit_of_work_factory=sqlite_unit_of_work)
    assert [log.id for log in logs] == [report.import_log_id]

    result = app.delete_import_log(
        report.import_log_id, caller=operator, unit_of_work_factory=sqlite_unit_of_work
    )
    assert result.deleted_case_count == 1
    assert list(_all_cases(sqlite_unit_of_work, admin)) == ["A2"]
    assert app.list_import_logs(caller=admin, unit_of_work_factory=sqlite_unit_of_work) == []


def test_reimport_is_idempotent(
    sqlite_unit_of_work: UnitOfWorkFactory,
    operator: CallerIdentity,
    admin: CallerIdentity,
) -> None:
    rows = [{"case_id": "R1", "applicant_name": "Jane"}, {"case_id": "R2"}]

    app.import_cases(rows, caller=operator, unit_of_work_factory=sqlite_unit_of_work)
    first = _all_cases(sqlite_unit_of_work, admin)
    first_ids = {key: case.id for key, case in first.items()}
    app.import_cases(rows, caller=operator, unit_of_work_factory=sqlite_unit_of_work)
    second = _all_cases(sqlite_unit_of_work, admin)

    assert {key: case.id for key, case in second.items()} == first_ids


def test_duplicate_rows_get_a_note(
    sqlite_unit_of_work: UnitOfWorkFactory,
    operator: CallerIdentity,
) -> None:
    rows = [
        {"case_id": "D1", "applicant_name": "first"},
        {"case_id": "D1", "applicant_name": "second"},
        {"case_id": "D1", "applicant_name": "third"},
    ]

    report = app.import_cases(rows, caller=operator, unit_of_work_factory=sqlite_unit_of_work)

    assert report.states == {
        0: RowState.SKIPPED_DUPLICATE,
        1: RowState.SKIPPED_DUPLICATE,
        2: RowState.SUCCEEDED,
    }
    detail = app.get_case_detail("D1", caller=operator, unit_of_work_factory=sqlite_unit_of_work)
    assert detail.case.applicant_name == "third"
    assert len(detail.notes) == 1
    assert "2 earlier occurrence(s) ignored" in detail.notes[0].content


def test_edit_and_annotate_imported_case(
    sqlite_unit_of_work: UnitOfWorkFactory,
    operator: CallerIdentity,
    other_operator: CallerIdentity,
) -> None:
    app.import_cases(
        [{"case_id": "E1", "applicant_name": "Jane", "phone": "555"}],
        caller=operator,
        unit_of_work_factory=sqlite_unit_of_work,
    )

    with pytest.raises(PermissionDeniedError):
        app.update_case(
            "E1",
            {"status": "FAILED"},
            caller=other_operator,
            unit_of_work_factory=sqlite_unit_of_work,
        )

    updated = app.update_case(
        "E1",
        {"status": "processing", "email": "jane@example.com"},
        caller=operator,
        unit_of_work_factory=sqlite_unit_of_work,
    )
    app.add_note("E1", "left voicemail", caller=operator, unit_of_work_factory=sqlite_unit_of_work)

    assert updated.status is CaseStatus.PROCESSING
    detail = app.get_case_detail("E1", caller=operator, unit_of_work_factory=sqlite_unit_of_work)
    assert detail.case.phone == "555"
    assert detail.case.email == "jane@example.com"
    assert [note.content for note in detail.notes] == ["left voicemail"]

    page = app.list_cases(
        caller=operator,
        unit_of_work_factory=sqlite_unit_of_work,
        filters=CaseQuery(status=CaseStatus.PROCESSING),
    )
    assert [case.case_key for case in page.items] == ["E1"]


def test_locked_row_fails_alone_while_the_batch_commits(
    sqlite_unit_of_work: UnitOfWorkFactory,
    operator: CallerIdentity,
    admin: CallerIdentity,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    execute = Session.execute

    def locked_for_b2(
        session: Session, statement: object, *args: object, **kwargs: object
    ) -> object:
        if isinstance(statement, Insert) and statement.table is case_table:
            params = statement.compile(dialect=session.get_bind().dialect).params
            if params.get("case_key") == "B2":
                raise OperationalError("INSERT INTO cases", {}, Exception("database is locked"))
        return execute(session, statement, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Session, "execute", locked_for_b2)
    report = app.import_cases(
        [{"case_id": "A1"}, {"case_id": "B2"}, {"case_id": "C3"}],
        caller=operator,
        unit_of_work_factory=sqlite_unit_of_work,
        config=ImportConfig(batch_size=10),
    )
    monkeypatch.undo()

    assert (report.success_count, report.fail_count) == (2, 1)
    assert report.states[1] is RowState.PERSIST_FAILED
    stored = _all_cases(sqlite_unit_of_work, admin)
    assert stored["A1"].status is CaseStatus.COMPLETED
    assert stored["C3"].status is CaseStatus.COMPLETED
    assert "B2" not in stored
    failed = [case for case in stored.values() if case.status is CaseStatus.FAILED]
    assert len(failed) == 1
    assert FALLBACK_PATTERN.match(failed[0].case_key)
    assert (failed[0].error_message or "").startswith("case_id=B2: ")
    assert "database is locked" in (failed[0].error_message or "")
