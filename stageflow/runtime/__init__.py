"""Stage transition runtime: orchestrator and the components it sequences."""
from .notification_gate import NotificationDedupGate, NotificationOutcome
from .orchestrator import StageTransitionOrchestrator
from .reconciler import OptimisticStateReconciler, RestoreToken, SpeculativeChange
from .results import (
    AttachmentFailure,
    CommitFailure,
    MessageClass,
    QueryBatchResult,
    QueryFailure,
    TransitionOutcome,
    TransitionResult,
    TransitionState,
    UploadBatchResult,
)
from .side_channel import SideChannelBatchManager
from .work_item_cache import InMemoryWorkItemCache, WorkItemCache
