# runtime/work_item_cache.py

import threading
from typing import Dict, Optional, Protocol

from stageflow.domain.stages import WorkItem


class WorkItemCache(Protocol):
    def get(self, work_item_id: str) -> Optional[WorkItem]: ...

    def set(self, work_item: WorkItem) -> None: ...

    def delete(self, work_item_id: str) -> None: ...


class InMemoryWorkItemCache:
    """
    Process-local view of work items as last seen by this client.

    - No TTL.
    - Entries are frozen models, so a stored value doubles as its own snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, WorkItem] = {}

    def get(self, work_item_id: str) -> Optional[WorkItem]:
        with self._lock:
            return self._items.get(work_item_id)

    def set(self, work_item: WorkItem) -> None:
        with self._lock:
            self._items[work_item.id] = work_item

    def delete(self, work_item_id: str) -> None:
        with self._lock:
            self._items.pop(work_item_id, None)

    def snapshot(self) -> Dict[str, WorkItem]:
        """
        Return a copy of all cached work items.
        """
        with self._lock:
            return dict(self._items)
