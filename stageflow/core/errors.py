# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------
from __future__ import annotations

from typing import Any


class StageflowError(Exception):
    pass


class TransportError(StageflowError):
    """Raised when a call to the practice service fails or is rejected."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def failed_fields(self) -> list[str]:
        fields = self.payload.get("failed_fields") or []
        return [str(f) for f in fields]


class NotificationStateError(StageflowError):
    """Raised when a notification send is attempted without a preview-issued key."""
    pass


class SpeculativeChangePending(StageflowError):
    """Raised when a work item already has an outstanding speculative change."""

    def __init__(self, work_item_id: str):
        self.work_item_id = work_item_id
        super().__init__(f"Work item '{work_item_id}' already has a pending speculative change")
