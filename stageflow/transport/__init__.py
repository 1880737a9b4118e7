"""Transports to the authoritative practice service."""
from .base import (
    CommitReceipt,
    NotificationSendReceipt,
    QueryBatchReceipt,
    QueryFailureItem,
    TransitionTransport,
    UploadDestination,
)
from .http_transport import HttpTransitionTransport
