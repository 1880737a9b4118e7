from typing import Sequence

from stageflow.domain.stages import ApprovalResponse, StageDefinition
from stageflow.observability import log_event

from .entities import ApprovalGateResult


class NoopApprovalGate:
    """Lets every transition through. The practice service still re-validates on commit."""

    def evaluate(
        self,
        *,
        trace_id: str,
        stage: StageDefinition,
        responses: Sequence[ApprovalResponse],
    ) -> ApprovalGateResult:
        if stage.approval_fields:
            log_event(
                "transition.approval_skipped",
                trace_id=trace_id,
                stage=stage.id,
                fields=len(stage.approval_fields),
            )
        return ApprovalGateResult(proceed=True)
