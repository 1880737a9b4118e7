from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from stageflow.domain.stages import (
    ApprovalResponse,
    AttachmentRef,
    ChannelOptions,
    QueryRecord,
)


class UploadUrlIn(BaseModel):
    file_name: str = Field(min_length=1)
    file_type: str = "application/octet-stream"
    file_size: int = Field(ge=0)


class UploadUrlOut(BaseModel):
    url: str
    object_path: str


class CommitIn(BaseModel):
    transition_id: str = Field(min_length=1)
    target_stage_id: str = Field(min_length=1)
    reason_id: str = Field(min_length=1)
    notes: str = ""
    attachments: list[AttachmentRef] = Field(default_factory=list)
    approval_responses: list[ApprovalResponse] = Field(default_factory=list)


class CommitOut(BaseModel):
    transition_id: str
    new_stage_id: str
    committed_at: datetime


class QueriesBulkIn(BaseModel):
    transition_id: str = Field(min_length=1)
    queries: list[QueryRecord] = Field(default_factory=list)


class QueryFailureOut(BaseModel):
    query_id: str
    message: str


class QueriesBulkOut(BaseModel):
    created_count: int
    failures: list[QueryFailureOut] = Field(default_factory=list)


class SendNotificationIn(ChannelOptions):
    dedupe_key: str = Field(min_length=1)


class SendNotificationOut(BaseModel):
    sent: bool
    suppressed: bool
