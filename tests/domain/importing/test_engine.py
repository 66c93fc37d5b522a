from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest

from caseflow.config.importing import ImportConfig, PriorityPolicy
from caseflow.domain.importing import (
    FallbackStatus,
    FatalInputError,
    PersistenceUnavailableError,
    ReconciliationEngine,
    RowState,
)
from caseflow.domain.importing.fallback import run_stamp
from caseflow.domain.model import CallerIdentity, CaseStatus
from tests.helpers.cases import RUN_AT, FakeStore, fixed_clock, make_case, ticking_clock

FALLBACK_PATTERN = re.compile(r"^FAILED-\d+-\d+-\d+(-[0-9a-f]{6})?$")


def _engine(store: FakeStore, **config: object) -> ReconciliationEngine:
    return ReconciliationEngine(
        unit_of_work_factory=store.unit_of_work,
        config=ImportConfig(**config),  # type: ignore[arg-type]
        clock=fixed_clock(),
    )


def test_end_to_end_scenario(fake_store: FakeStore, operator: CallerIdentity) -> None:
    rows = [{"case_id": "A1", "email": "bad"}, {"case_id": "A2", "email": "a2@x.com"}]

    report = _engine(fake_store).reconcile(rows, operator)

    payload = report.to_dict()
    assert payload["totalRows"] == 2
    assert payload["successCount"] == 1
    assert payload["failCount"] == 1
    assert payload["errors"] == [{"index": 0, "caseKey": "A1", "error": "Invalid email"}]
    assert payload["importLogId"] is not None

    cases = fake_store.cases
    assert cases.cases["A2"].status is CaseStatus.COMPLETED
    assert cases.cases["A2"].error_message is None
    failed = cases.failed()
    assert len(failed) == 1
    assert "A1" in (failed[0].error_message or "")
    assert FALLBACK_PATTERN.match(failed[0].case_key)
    assert "A1" not in cases.cases

    assert fake_store.import_logs is not None
    log = fake_store.import_logs.logs[report.import_log_id]  # type: ignore[index]
    assert (log.run_by, log.total_rows, log.success_count, log.fail_count) == ("user-1", 2, 1, 1)
    assert log.created_at == RUN_AT


def test_wrapper_payload_is_accepted(fake_store: FakeStore, operator: CallerIdentity) -> None:
    report = _engine(fake_store).reconcile({"cases": [{"case_id": "W1"}]}, operator)

    assert report.success_count == 1
    assert "W1" in fake_store.cases.cases


@pytest.mark.parametrize("payload", [None, "A1,A2", {"rows": []}, {"cases": "A1"}, 42])
def test_structurally_invalid_payload_is_fatal(
    fake_store: FakeStore, operator: CallerIdentity, payload: object
) -> None:
    with pytest.raises(FatalInputError):
        _engine(fake_store).reconcile(payload, operator)

    assert fake_store.cases.cases == {}
    assert fake_store.commits == 0


def test_non_mapping_row_rejects_whole_run(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    with pytest.raises(FatalInputError):
        _engine(fake_store).reconcile([{"case_id": "A"}, ["B"]], operator)

    assert fake_store.cases.cases == {}


def test_duplicate_rows_in_file(fake_store: FakeStore, operator: CallerIdentity) -> None:
    rows = [
        {"case_id": "A", "applicant_name": "old"},
        {"case_id": "A", "applicant_name": "new"},
    ]

    report = _engine(fake_store).reconcile(rows, operator)

    assert report.success_count == 1
    assert report.fail_count == 0
    assert report.skipped_count == 1
    assert report.states == {0: RowState.SKIPPED_DUPLICATE, 1: RowState.SUCCEEDED}
    assert [error.to_dict() for error in report.errors] == [
        {
            "index": 0,
            "caseKey": "A",
            "error": "Duplicate case_id 'A' in file; a later row takes precedence",
        }
    ]
    assert list(fake_store.cases.cases) == ["A"]
    case = fake_store.cases.cases["A"]
    assert case.applicant_name == "new"

    notes = fake_store.notes.list_for_case(case.id)
    assert len(notes) == 1
    assert "1 earlier occurrence(s) ignored" in notes[0].content
    assert notes[0].author_id == "user-1"
    assert report.duplicate_notes.ok


def test_no_note_when_authoritative_row_fails(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    rows = [{"case_id": "A", "email": "a@x.com"}, {"case_id": "A", "email": "broken"}]

    report = _engine(fake_store).reconcile(rows, operator)

    assert report.success_count == 0
    assert report.fail_count == 1
    assert report.states == {0: RowState.SKIPPED_DUPLICATE, 1: RowState.VALIDATION_FAILED}
    assert fake_store.notes.notes == []
    assert "A" not in fake_store.cases.cases


def test_reimport_overwrites_existing_case(fake_store: FakeStore, operator: CallerIdentity) -> None:
    engine = ReconciliationEngine(
        unit_of_work_factory=fake_store.unit_of_work,
        clock=ticking_clock(),
    )
    engine.reconcile([{"case_id": "R1", "applicant_name": "First", "phone": "1"}], operator)
    second = engine.reconcile([{"case_id": "R1", "applicant_name": "Second"}], operator)

    assert list(fake_store.cases.cases) == ["R1"]
    case = fake_store.cases.cases["R1"]
    assert case.applicant_name == "Second"
    assert case.phone is None
    assert case.error_message is None
    assert case.imported_at == second.run_at


def test_declared_status_is_kept(fake_store: FakeStore, operator: CallerIdentity) -> None:
    _engine(fake_store).reconcile([{"case_id": "S1", "status": "processing"}], operator)

    assert fake_store.cases.cases["S1"].status is CaseStatus.PROCESSING


def test_persistence_failure_is_isolated_to_the_row(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    fake_store.cases.fail_upsert_keys.add("B")

    report = _engine(fake_store).reconcile(
        [{"case_id": "A"}, {"case_id": "B"}, {"case_id": "C"}], operator
    )

    assert report.success_count == 2
    assert report.fail_count == 1
    assert report.states[1] is RowState.PERSIST_FAILED
    assert report.errors[0].message == "value too long for case B"
    failed = fake_store.cases.failed()
    assert len(failed) == 1
    assert failed[0].error_message == "case_id=B: value too long for case B"


def test_fallback_keys_follow_sorted_batch_positions(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    rows = [
        {"case_id": "C5", "email": "bad"},
        {"case_id": "C1"},
        {"case_id": "C2"},
        {"case_id": "C3"},
        {"case_id": "C4"},
    ]

    report = _engine(fake_store, batch_size=2).reconcile(rows, operator)

    # C5 sorts last: position 4, batch 2, offset 0
    assert report.fallbacks[0].case_key == f"FAILED-{run_stamp(RUN_AT)}-2-0"
    assert report.fallbacks[0].status is FallbackStatus.STORED
    # three batch commits plus the import log
    assert fake_store.commits == 4


def test_fallback_conflict_retries_with_suffix(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    taken = f"FAILED-{run_stamp(RUN_AT)}-0-0"
    fake_store.cases.cases[taken] = make_case(taken, status=CaseStatus.FAILED)

    report = _engine(fake_store).reconcile([{"case_id": "X", "email": "bad"}], operator)

    outcome = report.fallbacks[0]
    assert outcome.status is FallbackStatus.STORED_WITH_SUFFIX
    assert outcome.case_key is not None
    assert outcome.case_key.startswith(f"{taken}-")
    assert FALLBACK_PATTERN.match(outcome.case_key)
    assert report.fail_count == 1


def test_count_invariant_holds(fake_store: FakeStore, operator: CallerIdentity) -> None:
    rows: list[object] = [
        {"case_id": "A"},
        {"case_id": "A"},
        {"case_id": "B", "email": "bad"},
        {},
        {"case_id": "C", "priority": "URGENT"},
    ]

    report = _engine(fake_store).reconcile(rows, operator)

    assert report.total_rows == len(rows)
    assert report.success_count + report.fail_count <= report.total_rows
    assert (report.success_count, report.fail_count, report.skipped_count) == (2, 2, 1)
    assert len(report.states) == len(rows)


def test_strict_priority_policy_fails_the_row(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    report = _engine(fake_store, priority_policy=PriorityPolicy.STRICT).reconcile(
        [{"case_id": "C", "priority": "URGENT"}], operator
    )

    assert report.fail_count == 1
    assert report.errors[0].message == "Invalid priority"


def test_no_two_successful_cases_share_a_key(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    rows = [{"case_id": key} for key in ["K1", "k1", "K1", "K2", " K2 "]]

    _engine(fake_store).reconcile(rows, operator)

    keys = [case.case_key for case in fake_store.cases.cases.values() if not case.is_failed]
    assert len(keys) == len(set(keys))


def test_batch_commit_failure_is_fatal(fake_store: FakeStore, operator: CallerIdentity) -> None:
    fake_store.fail_commit_after = 1

    with pytest.raises(PersistenceUnavailableError):
        _engine(fake_store, batch_size=1).reconcile(
            [{"case_id": "A"}, {"case_id": "B"}], operator
        )


def test_run_without_caller_records_no_log(fake_store: FakeStore) -> None:
    report = _engine(fake_store).reconcile([{"case_id": "A"}], None)

    assert report.success_count == 1
    assert report.import_log_id is None
    assert report.import_log.ok
    assert report.import_log.detail == "no caller identity"
    assert fake_store.import_logs is not None
    assert fake_store.import_logs.logs == {}
    assert fake_store.cases.cases["A"].imported_by is None


def test_import_log_failure_does_not_change_outcome(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    assert fake_store.import_logs is not None
    fake_store.import_logs.fail = True

    report = _engine(fake_store).reconcile(
        [{"case_id": "A"}, {"case_id": "B", "email": "x"}], operator
    )

    assert not report.import_log.ok
    assert report.import_log_id is None
    assert (report.success_count, report.fail_count) == (1, 1)
    assert len(report.errors) == 1


def test_note_failure_does_not_change_outcome(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    fake_store.notes.fail = True

    report = _engine(fake_store).reconcile([{"case_id": "A"}, {"case_id": "A"}], operator)

    assert not report.duplicate_notes.ok
    assert report.success_count == 1
    assert report.import_log.ok
    assert report.import_log_id is not None


def test_run_timestamp_is_truncated_to_milliseconds(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    moment = datetime(2025, 1, 2, 3, 4, 5, 123456, tzinfo=UTC)
    engine = ReconciliationEngine(
        unit_of_work_factory=fake_store.unit_of_work,
        clock=fixed_clock(moment),
    )

    report = engine.reconcile([{"case_id": "A"}], operator)

    assert report.run_at == moment.replace(microsecond=123000)
    assert fake_store.cases.cases["A"].imported_at == report.run_at


def test_empty_payload_still_logs_the_run(fake_store: FakeStore, operator: CallerIdentity) -> None:
    report = _engine(fake_store).reconcile([], operator)

    assert report.to_dict()["totalRows"] == 0
    assert report.import_log_id is not None


def test_reserved_fallback_key_is_not_overwritten(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    reserved = "FAILED-1000-0-0"
    fake_store.cases.cases[reserved] = make_case(
        reserved, status=CaseStatus.FAILED, error_message="case_id=Z: Invalid email"
    )

    report = _engine(fake_store).reconcile(
        [{"case_id": reserved, "applicant_name": "Mallory"}], operator
    )

    assert report.fail_count == 1
    assert report.states == {0: RowState.VALIDATION_FAILED}
    assert report.errors[0].message == "case_id must not start with the reserved prefix FAILED-"
    kept = fake_store.cases.cases[reserved]
    assert kept.status is CaseStatus.FAILED
    assert kept.error_message == "case_id=Z: Invalid email"
    assert kept.applicant_name is None
    new_key = report.fallbacks[0].case_key
    assert new_key is not None
    assert new_key != reserved
    assert reserved in (fake_store.cases.cases[new_key].error_message or "")


def test_fallback_record_keeps_descriptive_fields(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    rows = [{"case_id": "A1", "applicant_name": " Jane ", "email": "bad", "priority": "high"}]

    report = _engine(fake_store).reconcile(rows, operator)

    key = report.fallbacks[0].case_key
    assert key is not None
    stored = fake_store.cases.cases[key]
    assert (stored.applicant_name, stored.email, stored.priority) == ("Jane", "bad", 3)
    assert stored.status is CaseStatus.FAILED
    assert stored.error_message == "case_id=A1: Invalid email"


def test_keys_with_non_ascii_digits_import_cleanly(
    fake_store: FakeStore, operator: CallerIdentity
) -> None:
    rows = [{"case_id": "C1²"}, {"case_id": "C1"}, {"case_id": "C٣"}]

    report = _engine(fake_store).reconcile(rows, operator)

    assert report.success_count == 3
    assert report.fail_count == 0
    assert set(fake_store.cases.cases) == {"C1", "C1²", "C٣"}
