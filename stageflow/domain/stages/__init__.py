"""Work items, stages and the transition request."""
from .entities import (
    ApprovalFieldDefinition,
    ApprovalResponse,
    AttachmentRef,
    ChannelOptions,
    Comparison,
    FieldKind,
    FileMeta,
    FileUpload,
    NotificationChannel,
    NotificationPreview,
    NotificationRecipient,
    PendingQuery,
    QueryRecord,
    StageDefinition,
    TransitionRequest,
    WorkItem,
)
