from typing import Protocol, Sequence

from stageflow.domain.stages import ApprovalResponse, StageDefinition
from .entities import ApprovalGateResult


class ApprovalGate(Protocol):
    def evaluate(
        self,
        *,
        trace_id: str,
        stage: StageDefinition,
        responses: Sequence[ApprovalResponse],
    ) -> ApprovalGateResult:
        ...
