"""Transition outcomes.

Every orchestrator call returns one TransitionResult. Validation failures,
concurrent rejections, commit failures and degraded successes are all variants
of the same type, so a caller cannot read ``new_stage_id`` without also seeing
the side-effect failures that came with it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from stageflow.domain.approval import FieldError
from stageflow.domain.stages import AttachmentRef


class TransitionState(str, Enum):
    IDLE = "IDLE"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    APPLYING = "APPLYING"
    COMMITTING = "COMMITTING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    NOTIFY_PREVIEWED = "NOTIFY_PREVIEWED"
    NOTIFY_SENT = "NOTIFY_SENT"


class TransitionOutcome(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    SUCCEEDED_WITH_WARNINGS = "SUCCEEDED_WITH_WARNINGS"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"
    CONCURRENT_TRANSITION_REJECTED = "CONCURRENT_TRANSITION_REJECTED"


class MessageClass(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class AttachmentFailure:
    file_name: str
    message: str


@dataclass(frozen=True)
class QueryFailure:
    query_id: str
    message: str


@dataclass(frozen=True)
class UploadBatchResult:
    uploaded: tuple[AttachmentRef, ...] = ()
    failures: tuple[AttachmentFailure, ...] = ()
    selected: tuple[str, ...] = ()


@dataclass(frozen=True)
class QueryBatchResult:
    submitted: int = 0
    created_count: int = 0
    failures: tuple[QueryFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class CommitFailure:
    message: str
    status_code: Optional[int] = None
    failed_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    work_item_id: str
    transition_id: Optional[str] = None
    trace_id: Optional[str] = None
    new_stage_id: Optional[str] = None
    committed_at: Optional[datetime] = None
    field_errors: tuple[FieldError, ...] = ()
    commit_error: Optional[CommitFailure] = None
    attachments: tuple[AttachmentRef, ...] = ()
    attachment_failures: tuple[AttachmentFailure, ...] = ()
    queries_created: int = 0
    query_failures: tuple[QueryFailure, ...] = field(default_factory=tuple)

    @property
    def committed(self) -> bool:
        return self.outcome in (
            TransitionOutcome.SUCCEEDED,
            TransitionOutcome.SUCCEEDED_WITH_WARNINGS,
        )

    @property
    def side_effect_failures(self) -> int:
        return len(self.attachment_failures) + len(self.query_failures)

    @property
    def message_class(self) -> MessageClass:
        if self.outcome == TransitionOutcome.SUCCEEDED:
            return MessageClass.SUCCESS
        if self.outcome == TransitionOutcome.SUCCEEDED_WITH_WARNINGS:
            return MessageClass.WARNING
        return MessageClass.ERROR

    @property
    def message(self) -> str:
        """User-facing summary of the outcome."""
        if self.outcome == TransitionOutcome.VALIDATION_FAILED:
            return "; ".join(e.message for e in self.field_errors) or "Validation failed"
        if self.outcome == TransitionOutcome.CONCURRENT_TRANSITION_REJECTED:
            return "A stage change for this project is already in progress"
        if self.outcome == TransitionOutcome.COMMIT_FAILED:
            return self.commit_error.message if self.commit_error else "Failed to update stage"

        if self.outcome == TransitionOutcome.SUCCEEDED_WITH_WARNINGS:
            parts = []
            if self.query_failures:
                parts.append(f"{_plural(len(self.query_failures), 'query', 'queries')} failed to save")
            if self.attachment_failures:
                names = ", ".join(f.file_name for f in self.attachment_failures)
                parts.append(f"{_plural(len(self.attachment_failures), 'attachment', 'attachments')} failed to upload ({names})")
            return "Stage changed, but " + " and ".join(parts)

        if self.queries_created:
            return f"Stage updated and {_plural(self.queries_created, 'query', 'queries')} created"
        return "Stage updated successfully"


def _plural(n: int, one: str, many: str) -> str:
    return f"{n} {one if n == 1 else many}"
