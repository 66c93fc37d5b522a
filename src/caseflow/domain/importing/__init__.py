"""Batch import reconciliation for applicant case rows.

Layered flow of one run:
1) extract and order raw rows by business key
2) mark superseded intra-file duplicates
3) validate each remaining row into typed case fields
4) upsert valid rows; store failed rows under synthetic fallback keys
5) attach duplicate notes and record the import log (best effort)
"""

from __future__ import annotations

from .contracts import (
    FallbackOutcome,
    FallbackStatus,
    FatalInputError,
    ImportReport,
    PersistenceUnavailableError,
    RowError,
    RowState,
    SideEffectResult,
)
from .engine import ReconciliationEngine, extract_rows
from .fallback import FallbackWriter, fallback_key
from .ordering import NormalizedRows, OrderedRow, natural_key, normalize_rows
from .recording import attach_duplicate_notes, record_import_log
from .validation import CaseFieldsModel, CaseRow, InvalidRow, ValidRow, validate_row

__all__ = [
    "CaseFieldsModel",
    "CaseRow",
    "FallbackOutcome",
    "FallbackStatus",
    "FallbackWriter",
    "FatalInputError",
    "ImportReport",
    "InvalidRow",
    "NormalizedRows",
    "OrderedRow",
    "PersistenceUnavailableError",
    "ReconciliationEngine",
    "RowError",
    "RowState",
    "SideEffectResult",
    "ValidRow",
    "attach_duplicate_notes",
    "extract_rows",
    "fallback_key",
    "natural_key",
    "normalize_rows",
    "record_import_log",
    "validate_row",
]
