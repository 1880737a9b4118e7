from typing import Sequence

from stageflow.domain.stages import ApprovalResponse, StageDefinition
from stageflow.observability import log_event

from .entities import ApprovalGateResult
from .rules import compile_approval_rules


class DefaultApprovalGate:
    """
    Default approval gate backed by the approval rule compiler.

    Stages without approval fields pass straight through; otherwise every
    field is evaluated and failures are reported field-by-field.
    """

    def evaluate(
        self,
        *,
        trace_id: str,
        stage: StageDefinition,
        responses: Sequence[ApprovalResponse],
    ) -> ApprovalGateResult:
        if not stage.approval_fields:
            return ApprovalGateResult(proceed=True)

        awaiting = bool(stage.required_fields)
        if awaiting:
            log_event(
                "transition.awaiting_approval",
                trace_id=trace_id,
                stage=stage.id,
                required=[f.id for f in stage.required_fields],
            )

        validation = compile_approval_rules(stage.approval_fields).validate(responses)
        if not validation.ok:
            return ApprovalGateResult(
                proceed=False,
                awaiting_approval=awaiting,
                field_errors=validation.field_errors,
            )

        return ApprovalGateResult(proceed=True, awaiting_approval=awaiting)
