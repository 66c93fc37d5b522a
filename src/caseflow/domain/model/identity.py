"""Caller identity threaded explicitly through every service call."""

from __future__ import annotations

from dataclasses import dataclass

from caseflow.domain.model.enums import Role


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    user_id: str
    role: Role = Role.OPERATOR

    def __post_init__(self) -> None:
        if not self.user_id or not self.user_id.strip():
            raise ValueError("Caller identity requires a non-empty user_id")

    @property
    def is_elevated(self) -> bool:
        return self.role is Role.ADMIN

    def may_act_for(self, owner_id: str | None) -> bool:
        """Whether the caller may modify a record owned by ``owner_id``."""
        return self.is_elevated or (owner_id is not None and owner_id == self.user_id)
