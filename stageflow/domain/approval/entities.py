# ============================================================
# Approval entities
# ============================================================
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FieldError:
    field_id: str
    message: str


@dataclass(frozen=True)
class ApprovalValidation:
    field_errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.field_errors

    @classmethod
    def passed(cls) -> "ApprovalValidation":
        return cls()


@dataclass(frozen=True)
class ApprovalGateResult:
    proceed: bool
    awaiting_approval: bool = False
    field_errors: tuple[FieldError, ...] = field(default_factory=tuple)
