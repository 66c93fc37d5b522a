"""Deterministic row ordering and intra-file duplicate resolution.

Responsibilities of this stage:
- order rows by business key using natural, case-insensitive comparison
- mark every earlier occurrence of a repeated key as superseded
- count superseded occurrences per key for the audit notes
- avoid persistence/database lookups
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from .contracts import FatalInputError
from .validation import extract_case_key

if TYPE_CHECKING:
    from collections.abc import Sequence

_DIGIT_RUN: Final[re.Pattern[str]] = re.compile(r"(\d+)")

type NaturalKey = tuple[tuple[int, int | str], ...]


def natural_key(value: str | None) -> NaturalKey:
    """Sort key splitting digit runs so that "C2" sorts before "C10".

    Text chunks compare case-insensitively; digit chunks compare numerically and
    sort before text chunks at the same position.
    """

    parts: list[tuple[int, int | str]] = []
    # odd split positions are the captured digit runs
    for position, chunk in enumerate(_DIGIT_RUN.split((value or "").casefold())):
        if not chunk:
            continue
        if position % 2:
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return tuple(parts)


@dataclass(frozen=True, slots=True)
class OrderedRow:
    """A raw row annotated with its original and processing positions."""

    index: int
    position: int
    raw: Mapping[str, object]
    case_key: str | None
    superseded: bool = False


@dataclass(slots=True)
class NormalizedRows:
    ordered: list[OrderedRow] = field(default_factory=list["OrderedRow"])
    duplicate_counts: dict[str, int] = field(default_factory=dict[str, int])

    @property
    def keys(self) -> list[str | None]:
        return [row.case_key for row in self.ordered]


def normalize_rows(rows: Sequence[object]) -> NormalizedRows:
    """Order ``rows`` and resolve duplicate business keys.

    The sort is stable, so among rows sharing a key the last one in the payload
    is the last one in the ordering and becomes authoritative.
    """

    keyed: list[tuple[int, Mapping[str, object], str | None]] = []
    for index, raw in enumerate(rows):
        if not isinstance(raw, Mapping):
            raise FatalInputError(
                f"Row {index} must be a mapping, got {type(raw).__name__}"
            )
        keyed.append((index, raw, extract_case_key(raw)))

    keyed.sort(key=lambda item: natural_key(item[2]))

    occurrences = Counter(key for _, _, key in keyed if key is not None)
    seen: Counter[str] = Counter()
    result = NormalizedRows()
    for position, (index, raw, key) in enumerate(keyed):
        superseded = False
        if key is not None and occurrences[key] > 1:
            seen[key] += 1
            superseded = seen[key] < occurrences[key]
        result.ordered.append(
            OrderedRow(index=index, position=position, raw=raw, case_key=key, superseded=superseded)
        )

    result.duplicate_counts = {
        key: count - 1 for key, count in occurrences.items() if count > 1
    }
    return result
