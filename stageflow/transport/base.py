"""Transport abstraction.

The orchestrator only talks to the practice service through these operations.
They might be implemented over:
- JSON over HTTP (see HttpTransitionTransport)
- RPC endpoints
- an in-process fake for tests
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from pydantic import BaseModel, Field

from stageflow.domain.stages import (
    ChannelOptions,
    FileMeta,
    FileUpload,
    NotificationChannel,
    NotificationPreview,
    QueryRecord,
    TransitionRequest,
)


class UploadDestination(BaseModel):
    url: str
    object_path: str


class CommitReceipt(BaseModel):
    transition_id: str
    new_stage_id: str
    committed_at: datetime


class QueryFailureItem(BaseModel):
    query_id: str
    message: str


class QueryBatchReceipt(BaseModel):
    created_count: int = 0
    failures: list[QueryFailureItem] = Field(default_factory=list)


class NotificationSendReceipt(BaseModel):
    sent: bool
    suppressed: bool = False


class TransitionTransport(Protocol):
    async def request_upload_destination(
        self, work_item_id: str, meta: FileMeta
    ) -> UploadDestination: ...

    async def transfer_bytes(self, destination: UploadDestination, file: FileUpload) -> None: ...

    async def commit_transition(
        self, work_item_id: str, transition_id: str, request: TransitionRequest
    ) -> CommitReceipt: ...

    async def create_query_batch(
        self, work_item_id: str, transition_id: str, queries: Sequence[QueryRecord]
    ) -> QueryBatchReceipt: ...

    async def preview_notification(
        self, transition_id: str, channel: NotificationChannel
    ) -> NotificationPreview: ...

    async def send_notification(
        self, transition_id: str, dedupe_key: str, options: ChannelOptions
    ) -> NotificationSendReceipt: ...
