"""Stage transition models.

A transition is described by:
- the work item being moved (a local, possibly-stale copy)
- the target stage and its approval fields
- a single immutable TransitionRequest carrying everything the caller collected
"""

from __future__ import annotations

import uuid
from datetime import date as date_type, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldKind(str, Enum):
    BOOLEAN = "boolean"
    NUMBER = "number"
    LONG_TEXT = "long_text"
    MULTI_SELECT = "multi_select"


class Comparison(str, Enum):
    EQUAL_TO = "equal_to"
    LESS_THAN = "less_than"
    GREATER_THAN = "greater_than"


NotificationChannel = Literal["staff", "client"]


class WorkItem(BaseModel):
    """A tracked unit of work as cached on the client."""
    model_config = ConfigDict(frozen=True)

    id: str
    stage_id: str
    stage_entered_at: datetime
    stage_name: str | None = None


class ApprovalFieldDefinition(BaseModel):
    """A server-defined condition that must hold before entering a stage.

    One model for all four kinds; only the payload for ``kind`` is consulted.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: FieldKind
    is_required: bool = True
    order: int = 0

    # boolean
    expected_boolean: Optional[bool] = None

    # number
    expected_number: Optional[float] = None
    comparison: Optional[Comparison] = None

    # multi_select
    options: tuple[str, ...] = ()

    @property
    def is_presence_check(self) -> bool:
        return self.kind == FieldKind.NUMBER and (
            self.comparison is None or self.expected_number is None
        )


class StageDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    approval_fields: tuple[ApprovalFieldDefinition, ...] = ()

    @field_validator("approval_fields")
    @classmethod
    def _sort_by_order(cls, fields: tuple[ApprovalFieldDefinition, ...]):
        return tuple(sorted(fields, key=lambda f: f.order))

    @property
    def required_fields(self) -> list[ApprovalFieldDefinition]:
        return [f for f in self.approval_fields if f.is_required]


class ApprovalResponse(BaseModel):
    """Caller-supplied answer for one approval field.

    ``value`` is deliberately untyped here; the rule compiler checks it.
    """
    model_config = ConfigDict(frozen=True)

    field_id: str
    value: Any = None


class AttachmentRef(BaseModel):
    """A file that has already been uploaded to object storage."""
    model_config = ConfigDict(frozen=True)

    file_name: str
    file_type: str = "application/octet-stream"
    file_size: int = 0
    object_path: str


class FileMeta(BaseModel):
    file_name: str
    file_type: str
    file_size: int


class FileUpload(BaseModel):
    """A locally selected file waiting to be uploaded."""
    model_config = ConfigDict(frozen=True)

    file_name: str
    content: bytes
    file_type: str = "application/octet-stream"

    def meta(self) -> FileMeta:
        return FileMeta(
            file_name=self.file_name,
            file_type=self.file_type or "application/octet-stream",
            file_size=len(self.content),
        )


class QueryRecord(BaseModel):
    """Persistence-ready shape of a query."""
    work_item_id: str
    query_id: str
    date: Optional[str] = None
    description: Optional[str] = None
    money_in: Optional[Decimal] = None
    money_out: Optional[Decimal] = None
    our_query: str = ""
    status: Literal["open"] = "open"


class PendingQuery(BaseModel):
    """A client-drafted query that is persisted only after the transition commits."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    date: Optional[date_type] = None
    description: Optional[str] = None
    money_in: Optional[Decimal] = None
    money_out: Optional[Decimal] = None
    our_query: Optional[str] = None

    @property
    def is_meaningful(self) -> bool:
        return bool((self.description or "").strip() or (self.our_query or "").strip())

    def to_record(self, work_item_id: str) -> QueryRecord:
        return QueryRecord(
            work_item_id=work_item_id,
            query_id=self.id,
            date=self.date.isoformat() if self.date else None,
            description=self.description or None,
            money_in=self.money_in or None,
            money_out=self.money_out or None,
            our_query=self.our_query or "",
        )


class TransitionRequest(BaseModel):
    """The single unit of work accepted by the orchestrator."""
    model_config = ConfigDict(frozen=True)

    work_item_id: str
    target_stage_id: str = ""
    reason_id: str = ""
    notes: str = ""
    attachments: tuple[AttachmentRef, ...] = ()
    pending_queries: tuple[PendingQuery, ...] = ()
    approval_responses: tuple[ApprovalResponse, ...] = ()


class NotificationRecipient(BaseModel):
    user_id: str
    name: str | None = None
    email: str | None = None


class NotificationPreview(BaseModel):
    """Server-computed summary of who would be notified for a committed transition."""
    model_config = ConfigDict(frozen=True)

    transition_id: str
    channel: NotificationChannel = "staff"
    dedupe_key: str
    recipients: tuple[NotificationRecipient, ...] = ()
    subject: str | None = None
    body: str | None = None


class ChannelOptions(BaseModel):
    """What the user confirmed in the notification dialog."""
    channel: NotificationChannel = "staff"
    send_email: bool = True
    send_push: bool = False
    send_sms: bool = False
    recipient_ids: list[str] = Field(default_factory=list)
    subject: str | None = None
    body: str | None = None
    suppress: bool = False
