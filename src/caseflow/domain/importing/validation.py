"""Row validation: raw spreadsheet mappings into typed case fields.

Validation never raises for bad data. Every row produces either ``ValidRow`` or
``InvalidRow``; only a row that is not a mapping at all is a contract violation
(``FatalInputError``).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Final

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_core import PydanticCustomError

from caseflow.config.importing import PriorityPolicy
from caseflow.domain.model import MAX_PRIORITY, MIN_PRIORITY, CaseFields, CaseStatus, Priority

from .contracts import FatalInputError
from .fallback import FALLBACK_PREFIX

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails

CASE_KEY_ALIASES: Final[tuple[str, ...]] = ("case_id", "case_key", "caseKey")
EMAIL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOB_FORMATS: Final[tuple[str, ...]] = ("%Y/%m/%d", "%m/%d/%Y")
MESSAGE_SEPARATOR: Final[str] = "; "
POLICY_CONTEXT_KEY: Final[str] = "priority_policy"
# Keys under this prefix belong to fallback records of failed rows.
RESERVED_KEY_PREFIX: Final[str] = f"{FALLBACK_PREFIX}-"


def is_reserved_key(case_key: str) -> bool:
    return case_key.upper().startswith(RESERVED_KEY_PREFIX)


def text_or_none(value: object) -> object:
    """Trim strings, stringify spreadsheet numbers, map blanks to ``None``."""

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def parse_dob(value: object) -> date | None:
    """Best-effort date parsing; anything unparsable becomes ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in DOB_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()  # noqa: DTZ007
        except ValueError:
            continue
    return None


def coerce_priority(value: object, policy: PriorityPolicy) -> int | None:
    """Map numeric or HIGH/MEDIUM/LOW input to 1..3.

    Unmappable values become ``None`` under ``COERCE`` and raise
    ``PydanticCustomError`` under ``STRICT``.
    """

    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    level = _priority_level(value)
    if level is not None and MIN_PRIORITY <= level <= MAX_PRIORITY:
        return level
    if policy is PriorityPolicy.STRICT:
        raise PydanticCustomError("invalid_priority", "Invalid priority")
    return None


def _priority_level(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return Priority(text.upper()).level
    except ValueError:
        pass
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def _policy_from(info: ValidationInfo) -> PriorityPolicy:
    context = info.context
    if isinstance(context, Mapping):
        policy = context.get(POLICY_CONTEXT_KEY)
        if isinstance(policy, PriorityPolicy):
            return policy
    return PriorityPolicy.COERCE


class CaseFieldsModel(BaseModel):
    """Descriptive case attributes shared by row imports and partial edits."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    applicant_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("applicant_name", "applicantName"),
    )
    dob: date | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    priority: int | None = None
    status: CaseStatus | None = None

    _normalize_text = field_validator(
        "applicant_name", "email", "phone", "category", mode="before"
    )(text_or_none)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is not None and not EMAIL_PATTERN.match(value):
            raise PydanticCustomError("invalid_email", "Invalid email")
        return value

    @field_validator("dob", mode="before")
    @classmethod
    def _coerce_dob(cls, value: object) -> date | None:
        return parse_dob(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: object, info: ValidationInfo) -> int | None:
        return coerce_priority(value, _policy_from(info))

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> CaseStatus | None:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if isinstance(value, str):
            try:
                return CaseStatus.parse(value)
            except ValueError:
                pass
        raise PydanticCustomError("invalid_status", "Invalid status")

    def to_fields(self) -> CaseFields:
        return CaseFields(
            applicant_name=self.applicant_name,
            dob=self.dob,
            email=self.email,
            phone=self.phone,
            category=self.category,
            priority=self.priority,
        )


class CaseRow(CaseFieldsModel):
    """One imported spreadsheet row."""

    case_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(*CASE_KEY_ALIASES),
        validate_default=True,
    )

    _normalize_key = field_validator("case_key", mode="before")(text_or_none)

    @field_validator("case_key")
    @classmethod
    def _require_key(cls, value: str | None) -> str:
        if value is None:
            raise PydanticCustomError("case_key_required", "case_id is required")
        if is_reserved_key(value):
            raise PydanticCustomError(
                "case_key_reserved",
                "case_id must not start with the reserved prefix {prefix}",
                {"prefix": RESERVED_KEY_PREFIX},
            )
        return value


@dataclass(frozen=True, slots=True)
class ValidRow:
    case_key: str
    fields: CaseFields
    status: CaseStatus | None = None


@dataclass(frozen=True, slots=True)
class InvalidRow:
    case_key: str | None
    message: str


type RowValidation = ValidRow | InvalidRow


def extract_case_key(raw: Mapping[str, object]) -> str | None:
    """Return the trimmed business key of a raw row, if any."""

    for alias in CASE_KEY_ALIASES:
        if alias in raw:
            value = text_or_none(raw[alias])
            return value if isinstance(value, str) else None
    return None


def salvage_fields(raw: Mapping[str, object]) -> CaseFields:
    """Descriptive cells of a row that failed validation, kept for review.

    Text cells are only trimmed and dob and priority are coerced leniently,
    so an invalid email, for one, is preserved as submitted.
    """

    def text(*names: str) -> str | None:
        for name in names:
            if name in raw:
                value = text_or_none(raw[name])
                return value if isinstance(value, str) else None
        return None

    return CaseFields(
        applicant_name=text("applicant_name", "applicantName"),
        dob=parse_dob(raw.get("dob")),
        email=text("email"),
        phone=text("phone"),
        category=text("category"),
        priority=coerce_priority(raw.get("priority"), PriorityPolicy.COERCE),
    )


def format_errors(errors: list[ErrorDetails]) -> str:
    return MESSAGE_SEPARATOR.join(error["msg"] for error in errors)


def validate_row(
    raw: object,
    *,
    priority_policy: PriorityPolicy = PriorityPolicy.COERCE,
) -> RowValidation:
    """Validate one raw row into ``ValidRow`` or ``InvalidRow``."""

    if not isinstance(raw, Mapping):
        raise FatalInputError(f"Row must be a mapping, got {type(raw).__name__}")
    try:
        row = CaseRow.model_validate(dict(raw), context={POLICY_CONTEXT_KEY: priority_policy})
    except ValidationError as exc:
        return InvalidRow(case_key=extract_case_key(raw), message=format_errors(exc.errors()))
    if row.case_key is None:
        return InvalidRow(case_key=None, message="case_id is required")
    return ValidRow(case_key=row.case_key, fields=row.to_fields(), status=row.status)
