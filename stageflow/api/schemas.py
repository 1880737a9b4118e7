from datetime import datetime
from typing import List, Optional

from pydantic import Base64Bytes, BaseModel, Field

from stageflow.domain.stages import (
    ApprovalResponse,
    AttachmentRef,
    ChannelOptions,
    FileUpload,
    PendingQuery,
    StageDefinition,
    TransitionRequest,
)
from stageflow.runtime import (
    MessageClass,
    NotificationOutcome,
    TransitionOutcome,
    TransitionResult,
    TransitionState,
)


class FileIn(BaseModel):
    """A file selected for upload, with base64 encoded content."""
    file_name: str = Field(min_length=1)
    file_type: str = "application/octet-stream"
    content: Base64Bytes

    def to_upload(self) -> FileUpload:
        return FileUpload(file_name=self.file_name, file_type=self.file_type, content=self.content)


class TransitionIn(BaseModel):
    """
    Body for starting a stage transition.

    ``stage`` is the target stage definition as the caller loaded it; the
    transition is rejected if it no longer matches ``target_stage_id``.
    """

    stage: StageDefinition
    target_stage_id: str = ""
    reason_id: str = ""
    notes: str = ""
    attachments: List[AttachmentRef] = Field(default_factory=list)
    pending_queries: List[PendingQuery] = Field(default_factory=list)
    approval_responses: List[ApprovalResponse] = Field(default_factory=list)
    files: List[FileIn] = Field(default_factory=list)

    def to_request(self, work_item_id: str) -> TransitionRequest:
        return TransitionRequest(
            work_item_id=work_item_id,
            target_stage_id=self.target_stage_id,
            reason_id=self.reason_id,
            notes=self.notes,
            attachments=tuple(self.attachments),
            pending_queries=tuple(self.pending_queries),
            approval_responses=tuple(self.approval_responses),
        )


class FieldErrorOut(BaseModel):
    field_id: str
    message: str


class CommitErrorOut(BaseModel):
    message: str
    status_code: Optional[int] = None
    failed_fields: List[str] = Field(default_factory=list)


class AttachmentFailureOut(BaseModel):
    file_name: str
    message: str


class QueryFailureOut(BaseModel):
    query_id: str
    message: str


class TransitionOut(BaseModel):
    outcome: TransitionOutcome
    message_class: MessageClass
    message: str
    work_item_id: str
    transition_id: Optional[str] = None
    trace_id: Optional[str] = None
    new_stage_id: Optional[str] = None
    committed_at: Optional[datetime] = None
    field_errors: List[FieldErrorOut] = Field(default_factory=list)
    commit_error: Optional[CommitErrorOut] = None
    attachments: List[AttachmentRef] = Field(default_factory=list)
    attachment_failures: List[AttachmentFailureOut] = Field(default_factory=list)
    queries_created: int = 0
    query_failures: List[QueryFailureOut] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: TransitionResult) -> "TransitionOut":
        commit_error = None
        if result.commit_error is not None:
            commit_error = CommitErrorOut(
                message=result.commit_error.message,
                status_code=result.commit_error.status_code,
                failed_fields=list(result.commit_error.failed_fields),
            )
        return cls(
            outcome=result.outcome,
            message_class=result.message_class,
            message=result.message,
            work_item_id=result.work_item_id,
            transition_id=result.transition_id,
            trace_id=result.trace_id,
            new_stage_id=result.new_stage_id,
            committed_at=result.committed_at,
            field_errors=[FieldErrorOut(field_id=e.field_id, message=e.message) for e in result.field_errors],
            commit_error=commit_error,
            attachments=list(result.attachments),
            attachment_failures=[
                AttachmentFailureOut(file_name=f.file_name, message=f.message)
                for f in result.attachment_failures
            ],
            queries_created=result.queries_created,
            query_failures=[
                QueryFailureOut(query_id=f.query_id, message=f.message) for f in result.query_failures
            ],
        )


class TransitionStateOut(BaseModel):
    transition_id: str
    state: TransitionState


class SendNotificationIn(ChannelOptions):
    dedupe_key: str = Field(min_length=1)

    def to_options(self) -> ChannelOptions:
        return ChannelOptions(**self.model_dump(exclude={"dedupe_key"}))


class NotificationOut(BaseModel):
    sent: bool
    suppressed: bool
    message: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: NotificationOutcome) -> "NotificationOut":
        return cls(sent=outcome.sent, suppressed=outcome.suppressed, message=outcome.message)
