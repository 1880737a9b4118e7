from fastapi import APIRouter, Depends, HTTPException, Response

from stageflow.api.core.container import get_container
from stageflow.api.schemas import (
    NotificationOut,
    SendNotificationIn,
    TransitionIn,
    TransitionOut,
    TransitionStateOut,
)
from stageflow.core.errors import NotificationStateError, TransportError
from stageflow.domain.stages import NotificationChannel, NotificationPreview
from stageflow.runtime import TransitionOutcome

router = APIRouter(tags=["Transitions"])

_STATUS_BY_OUTCOME = {
    TransitionOutcome.SUCCEEDED: 200,
    TransitionOutcome.SUCCEEDED_WITH_WARNINGS: 200,
    TransitionOutcome.VALIDATION_FAILED: 422,
    TransitionOutcome.CONCURRENT_TRANSITION_REJECTED: 409,
    TransitionOutcome.COMMIT_FAILED: 502,
}


@router.post(
    "/work-items/{work_item_id}/transitions",
    summary="Move a work item to another stage",
    response_model=TransitionOut,
)
async def start_transition(
    work_item_id: str,
    payload: TransitionIn,
    response: Response,
    container=Depends(get_container),
):
    """
    Run one stage transition end-to-end.

    The body always describes the outcome. Status codes:
    - 200: committed (check message_class for warnings)
    - 409: another transition for this work item is in flight
    - 422: stage selection or approval fields failed validation
    - 502: the practice service rejected or failed the commit
    """
    result = await container.orchestrator.submit(
        payload.to_request(work_item_id),
        stage=payload.stage,
        files=[f.to_upload() for f in payload.files],
    )
    response.status_code = _STATUS_BY_OUTCOME[result.outcome]
    return TransitionOut.from_result(result)


@router.get("/transitions/{transition_id}", response_model=TransitionStateOut)
async def get_transition_state(transition_id: str, container=Depends(get_container)):
    state = container.orchestrator.state_of(transition_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Transition not found")
    return TransitionStateOut(transition_id=transition_id, state=state)


@router.post(
    "/transitions/{transition_id}/notifications/{channel}/preview",
    response_model=NotificationPreview,
)
async def preview_notification(
    transition_id: str,
    channel: NotificationChannel,
    container=Depends(get_container),
):
    try:
        return await container.orchestrator.preview_notification(transition_id, channel)
    except NotificationStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except TransportError as exc:
        raise HTTPException(status_code=_upstream_status(exc), detail=exc.message)


@router.post(
    "/transitions/{transition_id}/notifications/{channel}/send",
    response_model=NotificationOut,
)
async def send_notification(
    transition_id: str,
    channel: NotificationChannel,
    payload: SendNotificationIn,
    container=Depends(get_container),
):
    options = payload.to_options().model_copy(update={"channel": channel})
    try:
        outcome = await container.orchestrator.send_notification(
            transition_id, payload.dedupe_key, options
        )
    except NotificationStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except TransportError as exc:
        raise HTTPException(status_code=_upstream_status(exc), detail=exc.message)
    return NotificationOut.from_outcome(outcome)


def _upstream_status(exc: TransportError) -> int:
    # Client errors from the service pass through; anything else is a bad gateway.
    if exc.status_code is not None and 400 <= exc.status_code < 500:
        return exc.status_code
    return 502
