"""Optimistic state reconciliation.

``apply`` writes a speculative stage change into the local cache and hands back a
RestoreToken holding the exact prior value. ``commit_or_rollback`` either drops the
token (speculative state stays until the next authoritative refresh) or puts the
prior value back.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from stageflow.core.errors import SpeculativeChangePending
from stageflow.domain.stages import WorkItem
from .work_item_cache import WorkItemCache


@dataclass(frozen=True)
class SpeculativeChange:
    work_item_id: str
    stage_id: str
    stage_name: Optional[str] = None
    stage_entered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class RestoreToken:
    work_item_id: str
    prior: Optional[WorkItem]
    token_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class OptimisticStateReconciler:
    def __init__(self, cache: WorkItemCache) -> None:
        self._cache = cache
        self._lock = threading.Lock()
        self._pending: dict[str, RestoreToken] = {}

    def apply(self, change: SpeculativeChange) -> RestoreToken:
        with self._lock:
            if change.work_item_id in self._pending:
                raise SpeculativeChangePending(change.work_item_id)

            prior = self._cache.get(change.work_item_id)
            if prior is not None:
                self._cache.set(
                    prior.model_copy(
                        update={
                            "stage_id": change.stage_id,
                            "stage_name": change.stage_name,
                            "stage_entered_at": change.stage_entered_at,
                        }
                    )
                )

            token = RestoreToken(work_item_id=change.work_item_id, prior=prior)
            self._pending[change.work_item_id] = token
            return token

    def commit_or_rollback(self, token: RestoreToken, succeeded: bool) -> None:
        with self._lock:
            current = self._pending.get(token.work_item_id)
            if current is None or current.token_id != token.token_id:
                # Already settled
                return
            del self._pending[token.work_item_id]

            if succeeded:
                return
            if token.prior is None:
                self._cache.delete(token.work_item_id)
            else:
                self._cache.set(token.prior)

    def refresh(self, work_item: WorkItem) -> None:
        """Store authoritative state. Ignored while a speculative change is pending."""
        with self._lock:
            if work_item.id in self._pending:
                return
            self._cache.set(work_item)

    def current(self, work_item_id: str) -> Optional[WorkItem]:
        return self._cache.get(work_item_id)

    def is_pending(self, work_item_id: str) -> bool:
        with self._lock:
            return work_item_id in self._pending
