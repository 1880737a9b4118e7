# --------------------------------
# DI container
# --------------------------------
from functools import lru_cache

from stageflow.config import settings
from stageflow.runtime import (
    InMemoryWorkItemCache,
    OptimisticStateReconciler,
    StageTransitionOrchestrator,
)
from stageflow.transport import HttpTransitionTransport


class Container:
    def __init__(self):
        self._transport = HttpTransitionTransport(
            base_url=settings.service_base_url,
            timeout=settings.request_timeout_seconds,
            upload_timeout=settings.upload_timeout_seconds,
        )
        self._orchestrator = StageTransitionOrchestrator(
            transport=self._transport,
            reconciler=OptimisticStateReconciler(InMemoryWorkItemCache()),
            max_concurrent_uploads=settings.max_concurrent_uploads,
            max_tracked_transitions=settings.max_tracked_transitions,
        )

    @property
    def orchestrator(self) -> StageTransitionOrchestrator:
        return self._orchestrator


@lru_cache
def get_container():
    return Container()
