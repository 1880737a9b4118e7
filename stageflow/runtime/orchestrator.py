"""End-to-end stage transition: select -> approve -> upload -> apply -> commit -> queries.

This is the only entry point consumers use. It is responsible for:
- refusing a second transition for a work item that already has one in flight
- checking the stage/reason selection and the target stage's approval fields
- uploading newly selected files (fan-out) before the commit
- applying the new stage to the local cache optimistically, and rolling it back on failure
- a single commit round trip (no internal retry; the caller decides)
- persisting drafted queries after the commit, as a best-effort continuation
- the caller-driven notification preview/send that may follow a successful commit
- Observability: one trace per attempt, spans per phase

Every outcome, including degraded success, comes back as a TransitionResult.
"""

from __future__ import annotations

import threading
import uuid
from collections import OrderedDict
from typing import Sequence

from stageflow.core.errors import NotificationStateError, TransportError
from stageflow.domain.approval import ApprovalGate, DefaultApprovalGate, FieldError
from stageflow.domain.stages import (
    ChannelOptions,
    FileUpload,
    NotificationChannel,
    NotificationPreview,
    StageDefinition,
    TransitionRequest,
)
from stageflow.observability import log_event, new_trace_id, traced
from stageflow.transport import TransitionTransport

from .notification_gate import NotificationDedupGate, NotificationOutcome
from .reconciler import OptimisticStateReconciler, SpeculativeChange
from .results import (
    CommitFailure,
    TransitionOutcome,
    TransitionResult,
    TransitionState,
    UploadBatchResult,
)
from .side_channel import SideChannelBatchManager
from .work_item_cache import InMemoryWorkItemCache

_NOTIFIABLE_STATES = {
    TransitionState.SUCCEEDED,
    TransitionState.NOTIFY_PREVIEWED,
    TransitionState.NOTIFY_SENT,
}


class StageTransitionOrchestrator:
    """Coordinates approval, optimistic state, commit and side effects."""

    def __init__(
        self,
        *,
        transport: TransitionTransport,
        reconciler: OptimisticStateReconciler | None = None,
        approval_gate: ApprovalGate | None = None,
        side_channel: SideChannelBatchManager | None = None,
        notification_gate: NotificationDedupGate | None = None,
        max_concurrent_uploads: int = 4,
        max_tracked_transitions: int = 1000,
    ) -> None:
        self._transport = transport
        self._reconciler = reconciler or OptimisticStateReconciler(InMemoryWorkItemCache())
        self._approval_gate = approval_gate or DefaultApprovalGate()
        self._side_channel = side_channel or SideChannelBatchManager(
            transport=transport,
            max_concurrent_uploads=max_concurrent_uploads,
        )
        self._notification_gate = notification_gate or NotificationDedupGate(transport=transport)

        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        # Only committed transitions stay tracked, oldest evicted first.
        self._max_tracked = max(1, max_tracked_transitions)
        self._states: OrderedDict[str, TransitionState] = OrderedDict()
        self._traces: OrderedDict[str, str] = OrderedDict()

    @property
    def reconciler(self) -> OptimisticStateReconciler:
        return self._reconciler

    def state_of(self, transition_id: str) -> TransitionState | None:
        return self._states.get(transition_id)

    @property
    def tracked_transitions(self) -> int:
        return len(self._states)

    def is_in_flight(self, work_item_id: str) -> bool:
        with self._lock:
            return work_item_id in self._in_flight

    async def submit(
        self,
        request: TransitionRequest,
        *,
        stage: StageDefinition,
        files: Sequence[FileUpload] = (),
    ) -> TransitionResult:
        """Run one stage transition end-to-end.

        Args:
            request: What the caller collected (target stage, reason, notes, queries, approvals).
            stage: The target stage definition as loaded for this attempt.
            files: Newly selected local files to upload before committing.

        Returns:
            A TransitionResult; this method does not raise for validation,
            concurrency, commit or side-effect failures.
        """
        trace_id = new_trace_id()
        work_item_id = request.work_item_id

        with self._lock:
            if work_item_id in self._in_flight:
                busy = True
            else:
                busy = False
                self._in_flight.add(work_item_id)

        if busy:
            log_event("transition.rejected", trace_id=trace_id, work_item=work_item_id)
            return TransitionResult(
                outcome=TransitionOutcome.CONCURRENT_TRANSITION_REJECTED,
                work_item_id=work_item_id,
                trace_id=trace_id,
            )

        transition_id = uuid.uuid4().hex
        try:
            return await self._run(
                trace_id=trace_id,
                transition_id=transition_id,
                request=request,
                stage=stage,
                files=files,
            )
        except BaseException:
            stuck = self._states.get(transition_id)
            log_event(
                "transition.aborted",
                trace_id=trace_id,
                transition_id=transition_id,
                state=stuck.value if stuck else None,
            )
            self._forget(transition_id)
            raise
        finally:
            with self._lock:
                self._in_flight.discard(work_item_id)

    async def _run(
        self,
        *,
        trace_id: str,
        transition_id: str,
        request: TransitionRequest,
        stage: StageDefinition,
        files: Sequence[FileUpload],
    ) -> TransitionResult:
        work_item_id = request.work_item_id
        self._track(transition_id, trace_id)

        log_event(
            "transition.start",
            trace_id=trace_id,
            transition_id=transition_id,
            work_item=work_item_id,
            target_stage=request.target_stage_id,
        )

        # -------------------------
        # 1) SELECTION CHECK
        # -------------------------
        selection_errors = _check_selection(request, stage)
        if selection_errors:
            return self._validation_failed(trace_id, transition_id, request, selection_errors)

        # -------------------------
        # 2) APPROVAL GATE
        # -------------------------
        gate = self._approval_gate.evaluate(
            trace_id=trace_id,
            stage=stage,
            responses=request.approval_responses,
        )
        if gate.awaiting_approval:
            self._states[transition_id] = TransitionState.AWAITING_APPROVAL
        if not gate.proceed:
            return self._validation_failed(trace_id, transition_id, request, gate.field_errors)

        # -------------------------
        # 3) UPLOAD (fan-out, each file independent)
        # -------------------------
        uploads = UploadBatchResult()
        if files:
            uploads = await self._side_channel.upload_attachments(
                trace_id=trace_id,
                work_item_id=work_item_id,
                files=files,
            )
        if uploads.uploaded:
            request = request.model_copy(
                update={"attachments": request.attachments + uploads.uploaded}
            )

        # -------------------------
        # 4) APPLY (optimistic)
        # -------------------------
        self._states[transition_id] = TransitionState.APPLYING
        log_event("transition.applying", trace_id=trace_id, transition_id=transition_id)
        token = self._reconciler.apply(
            SpeculativeChange(
                work_item_id=work_item_id,
                stage_id=stage.id,
                stage_name=stage.name,
            )
        )

        # -------------------------
        # 5) COMMIT (single round trip)
        # -------------------------
        self._states[transition_id] = TransitionState.COMMITTING
        with traced("transport.commit", trace_id=trace_id, transition_id=transition_id) as span:
            try:
                receipt = await self._transport.commit_transition(work_item_id, transition_id, request)
            except TransportError as exc:
                span.fail(exc.message)
                self._reconciler.commit_or_rollback(token, succeeded=False)
                self._forget(transition_id)
                log_event(
                    "transition.commit_failed",
                    trace_id=trace_id,
                    transition_id=transition_id,
                    status_code=exc.status_code,
                    error=exc.message,
                )
                return TransitionResult(
                    outcome=TransitionOutcome.COMMIT_FAILED,
                    work_item_id=work_item_id,
                    transition_id=transition_id,
                    trace_id=trace_id,
                    commit_error=CommitFailure(
                        message=exc.message,
                        status_code=exc.status_code,
                        failed_fields=tuple(exc.failed_fields),
                    ),
                    attachments=request.attachments,
                    attachment_failures=uploads.failures,
                )
            except BaseException:
                # Cancelled (or broken) before the commit resolved: nothing is final yet.
                self._reconciler.commit_or_rollback(token, succeeded=False)
                log_event("transition.cancelled", trace_id=trace_id, transition_id=transition_id)
                raise

        self._reconciler.commit_or_rollback(token, succeeded=True)
        self._states[transition_id] = TransitionState.SUCCEEDED
        log_event(
            "transition.committed",
            trace_id=trace_id,
            transition_id=transition_id,
            new_stage=receipt.new_stage_id,
        )

        # -------------------------
        # 6) QUERIES (best effort, never fails the transition)
        # -------------------------
        queries = await self._side_channel.create_queries(
            trace_id=trace_id,
            work_item_id=work_item_id,
            transition_id=transition_id,
            pending=request.pending_queries,
        )

        degraded = bool(uploads.failures or queries.failures)
        return TransitionResult(
            outcome=(
                TransitionOutcome.SUCCEEDED_WITH_WARNINGS
                if degraded
                else TransitionOutcome.SUCCEEDED
            ),
            work_item_id=work_item_id,
            transition_id=transition_id,
            trace_id=trace_id,
            new_stage_id=receipt.new_stage_id,
            committed_at=receipt.committed_at,
            attachments=request.attachments,
            attachment_failures=uploads.failures,
            queries_created=queries.created_count,
            query_failures=queries.failures,
        )

    # ------------------------------
    # Notifications (caller-driven, after a commit)
    # ------------------------------

    async def preview_notification(
        self,
        transition_id: str,
        channel: NotificationChannel = "staff",
    ) -> NotificationPreview:
        self._require_committed(transition_id)
        preview = await self._notification_gate.preview(
            trace_id=self._traces.get(transition_id, transition_id),
            transition_id=transition_id,
            channel=channel,
        )
        if self._states.get(transition_id) == TransitionState.SUCCEEDED:
            self._states[transition_id] = TransitionState.NOTIFY_PREVIEWED
        return preview

    async def send_notification(
        self,
        transition_id: str,
        dedupe_key: str,
        options: ChannelOptions,
    ) -> NotificationOutcome:
        self._require_committed(transition_id)
        outcome = await self._notification_gate.send(
            trace_id=self._traces.get(transition_id, transition_id),
            transition_id=transition_id,
            dedupe_key=dedupe_key,
            options=options,
        )
        if transition_id in self._states:
            self._states[transition_id] = TransitionState.NOTIFY_SENT
        return outcome

    def _require_committed(self, transition_id: str) -> None:
        state = self._states.get(transition_id)
        if state not in _NOTIFIABLE_STATES:
            raise NotificationStateError(
                f"Transition '{transition_id}' has not committed (state: {state.value if state else 'unknown'})"
            )

    def _track(self, transition_id: str, trace_id: str) -> None:
        self._traces[transition_id] = trace_id
        self._states[transition_id] = TransitionState.IDLE
        while len(self._states) > self._max_tracked:
            oldest, _ = self._states.popitem(last=False)
            self._forget(oldest)

    def _forget(self, transition_id: str) -> None:
        self._states.pop(transition_id, None)
        self._traces.pop(transition_id, None)
        self._notification_gate.forget(transition_id)

    def _validation_failed(
        self,
        trace_id: str,
        transition_id: str,
        request: TransitionRequest,
        errors: Sequence[FieldError],
    ) -> TransitionResult:
        log_event(
            "transition.validation_failed",
            trace_id=trace_id,
            transition_id=transition_id,
            fields=[e.field_id for e in errors],
        )
        self._forget(transition_id)
        return TransitionResult(
            outcome=TransitionOutcome.VALIDATION_FAILED,
            work_item_id=request.work_item_id,
            transition_id=transition_id,
            trace_id=trace_id,
            field_errors=tuple(errors),
        )


# ------------------------------
# Helper functions
# ------------------------------


def _check_selection(request: TransitionRequest, stage: StageDefinition) -> list[FieldError]:
    """Stage and reason must be chosen, and the stage must be the one that was loaded."""
    errors: list[FieldError] = []
    if not request.target_stage_id.strip():
        errors.append(FieldError(field_id="target_stage_id", message="Please select a new stage"))
    elif request.target_stage_id != stage.id:
        errors.append(
            FieldError(
                field_id="target_stage_id",
                message="Stage configuration has changed. Please refresh and try again.",
            )
        )
    if not request.reason_id.strip():
        errors.append(FieldError(field_id="reason_id", message="Please select a change reason"))
    return errors
