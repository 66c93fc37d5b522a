from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from caseflow.app import delete_import_log, import_cases, list_cases
from caseflow.config import ConfigurationError, configure_logging, require_env_var
from caseflow.domain.errors import CaseflowError
from caseflow.domain.importing import FatalInputError
from caseflow.domain.model import CallerIdentity, CaseStatus, Role
from caseflow.domain.ports.persistence import CaseQuery

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

USER_ID_ENV = "CASEFLOW_USER_ID"


def _add_identity_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--user-id",
        type=str,
        default=None,
        help="Caller identity (default: $CASEFLOW_USER_ID)",
    )
    parser.add_argument(
        "--role",
        type=str,
        default=Role.OPERATOR.value,
        help="Caller role, ADMIN or OPERATOR (default: %(default)s)",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import and manage applicant cases")
    subparsers = parser.add_subparsers(dest="command", required=True)

    importer = subparsers.add_parser("import", help="Reconcile a JSON file of case rows")
    importer.add_argument(
        "file",
        type=Path,
        help='JSON file holding a list of rows or {"cases": [...]}',
    )
    _add_identity_arguments(importer)

    delete = subparsers.add_parser(
        "delete-import",
        help="Delete an import log with its failed cases and their notes",
    )
    delete.add_argument("log_id", type=str, help="Import log id")
    _add_identity_arguments(delete)

    cases = subparsers.add_parser("cases", help="Case queries")
    cases_sub = cases.add_subparsers(dest="cases_command", required=True)
    cases_list = cases_sub.add_parser("list", help="List cases, newest import first")
    cases_list.add_argument("--status", type=str, help="Filter by status")
    cases_list.add_argument("--category", type=str, help="Filter by category")
    cases_list.add_argument("--priority", type=int, help="Filter by priority (1-3)")
    cases_list.add_argument(
        "--search",
        type=str,
        help="Case-insensitive match on case key or applicant name",
    )
    cases_list.add_argument(
        "--from",
        dest="imported_from",
        type=str,
        help="ISO-8601 timestamp (UTC): earliest import time",
    )
    cases_list.add_argument(
        "--to",
        dest="imported_to",
        type=str,
        help="ISO-8601 timestamp (UTC): latest import time",
    )
    cases_list.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Page size, 1 to 200 (default: %(default)s)",
    )
    cases_list.add_argument("--cursor", type=str, help="Cursor returned by a previous page")
    _add_identity_arguments(cases_list)

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _caller(args: argparse.Namespace) -> CallerIdentity:
    try:
        role = Role.parse(args.role)
    except ValueError as exc:
        raise ValueError(f"Invalid role: {args.role}") from exc
    user_id = args.user_id or require_env_var(USER_ID_ENV)
    return CallerIdentity(user_id=user_id, role=role)


def _case_query(args: argparse.Namespace) -> CaseQuery:
    status = None
    if args.status:
        try:
            status = CaseStatus.parse(args.status)
        except ValueError as exc:
            raise ValueError(f"Invalid status: {args.status}") from exc
    return CaseQuery(
        status=status,
        category=args.category,
        priority=args.priority,
        imported_from=_parse_iso_datetime(args.imported_from) if args.imported_from else None,
        imported_to=_parse_iso_datetime(args.imported_to) if args.imported_to else None,
        search=args.search,
    )


def _load_payload(path: Path) -> object:
    try:
        with path.open(encoding="utf-8") as handle:
            return json.load(handle)
    except OSError as exc:
        raise ValueError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc


def _emit(document: object) -> None:
    sys.stdout.write(json.dumps(document, indent=2) + "\n")


def main(argv: Sequence[str] | None = None) -> None:
    """Run one caseflow command and print its result as JSON."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        configure_logging()
        parsed_args = _parse_args(args_list)
        caller = _caller(parsed_args)
        payload: object = None
        query: CaseQuery | None = None
        log_id: UUID | None = None
        if parsed_args.command == "import":
            payload = _load_payload(parsed_args.file)
        elif parsed_args.command == "delete-import":
            log_id = _parse_uuid(parsed_args.log_id)
        elif parsed_args.command == "cases":
            query = _case_query(parsed_args)
    except (ValueError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "import":
            report = import_cases(payload, caller=caller)
            _emit(report.to_dict())
        elif parsed_args.command == "delete-import" and log_id is not None:
            result = delete_import_log(log_id, caller=caller)
            _emit(result.to_dict())
        elif parsed_args.command == "cases" and parsed_args.cases_command == "list":
            page = list_cases(
                caller=caller,
                filters=query,
                limit=parsed_args.limit,
                cursor=parsed_args.cursor,
            )
            _emit(page.to_dict())
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (FatalInputError, CaseflowError, ConfigurationError):
        log.exception("Request rejected")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
