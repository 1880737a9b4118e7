"""FastAPI practice service.

This stands in for the authoritative backend a stage transition talks to:
- signed upload URLs and raw byte uploads
- the stage commit itself (re-validating approvals server-side)
- bulk query creation
- notification preview and send

Important:
- Commit is idempotent on the client-issued transition id
- A dedupe key is only accepted if it matches the current preview
- A key that has already been dispatched is suppressed, not an error
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Iterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from stageflow.db.connection import get_db, init_db
from stageflow.db.models import Stage, StageTransition, WorkItem
from stageflow.domain.approval import validate_approval
from stageflow.domain.stages import (
    ApprovalFieldDefinition,
    FileMeta,
    NotificationChannel,
    NotificationPreview,
    NotificationRecipient,
)
from stageflow.observability import log_event
from .repository import PracticeRepository
from .schemas import (
    CommitIn,
    CommitOut,
    QueriesBulkIn,
    QueriesBulkOut,
    QueryFailureOut,
    SendNotificationIn,
    SendNotificationOut,
    UploadUrlIn,
    UploadUrlOut,
)

router = APIRouter(tags=["Practice Service"])


def get_practice_repo(db: Session = Depends(get_db)) -> PracticeRepository:
    return PracticeRepository(db)


# ------------------------------
# Attachments
# ------------------------------

@router.post("/work-items/{work_item_id}/attachments/upload-url", response_model=UploadUrlOut)
async def request_upload_url(
    work_item_id: str,
    payload: UploadUrlIn,
    request: Request,
    repo: PracticeRepository = Depends(get_practice_repo),
) -> UploadUrlOut:
    _require_work_item(repo, work_item_id)
    upload = repo.create_upload(work_item_id, FileMeta(**payload.model_dump()))
    url = request.url_for("receive_upload", object_path=upload.object_path)
    return UploadUrlOut(url=str(url), object_path=upload.object_path)


@router.put("/uploads/{object_path:path}", name="receive_upload", status_code=204)
async def receive_upload(
    object_path: str,
    request: Request,
    repo: PracticeRepository = Depends(get_practice_repo),
) -> None:
    content = await request.body()

    upload = repo.get_upload(object_path)
    if upload is None:
        raise HTTPException(status_code=404, detail="Upload URL not found")
    repo.mark_received(upload, len(content))


# ------------------------------
# Stage commit
# ------------------------------

@router.patch("/work-items/{work_item_id}/stage", response_model=CommitOut)
async def commit_stage(
    work_item_id: str,
    payload: CommitIn,
    repo: PracticeRepository = Depends(get_practice_repo),
) -> CommitOut:
    existing = repo.get_transition(payload.transition_id)
    if existing is not None:
        if existing.work_item_id != work_item_id:
            raise HTTPException(status_code=409, detail="Transition id belongs to another project")
        # Replayed commit: report the original outcome.
        return _commit_out(existing)

    item = _require_work_item(repo, work_item_id)

    stage = repo.get_stage(payload.target_stage_id)
    if stage is None:
        raise HTTPException(status_code=400, detail="Invalid stage")

    definitions = [ApprovalFieldDefinition.model_validate(f) for f in stage.approval_fields or []]
    validation = validate_approval(definitions, payload.approval_responses)
    if not validation.ok:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Stage approval requirements not met",
                "failed_fields": [e.field_id for e in validation.field_errors],
                "stage_approval_required": True,
            },
        )

    transition = repo.commit_transition(
        work_item=item,
        stage=stage,
        transition_id=payload.transition_id,
        reason_id=payload.reason_id,
        notes=payload.notes,
        attachments=payload.attachments,
    )
    log_event(
        "service.stage_committed",
        trace_id=payload.transition_id,
        work_item=work_item_id,
        from_stage=transition.from_stage_id,
        to_stage=transition.to_stage_id,
    )
    return _commit_out(transition)


# ------------------------------
# Queries
# ------------------------------

@router.post("/work-items/{work_item_id}/queries/bulk", response_model=QueriesBulkOut)
async def create_queries_bulk(
    work_item_id: str,
    payload: QueriesBulkIn,
    repo: PracticeRepository = Depends(get_practice_repo),
) -> QueriesBulkOut:
    _require_work_item(repo, work_item_id)
    transition = repo.get_transition(payload.transition_id)
    if transition is None or transition.work_item_id != work_item_id:
        raise HTTPException(status_code=400, detail="Unknown transition for this project")

    created, failures = repo.create_queries(
        work_item_id=work_item_id,
        transition_id=payload.transition_id,
        records=payload.queries,
    )
    return QueriesBulkOut(
        created_count=created,
        failures=[QueryFailureOut(**f) for f in failures],
    )


# ------------------------------
# Notifications
# ------------------------------

@router.post(
    "/transitions/{transition_id}/notifications/{channel}/preview",
    response_model=NotificationPreview,
)
async def preview_notification(
    transition_id: str,
    channel: NotificationChannel,
    repo: PracticeRepository = Depends(get_practice_repo),
) -> NotificationPreview:
    return _build_preview(repo, transition_id, channel)


@router.post(
    "/transitions/{transition_id}/notifications/{channel}/send",
    response_model=SendNotificationOut,
)
async def send_notification(
    transition_id: str,
    channel: NotificationChannel,
    payload: SendNotificationIn,
    repo: PracticeRepository = Depends(get_practice_repo),
) -> SendNotificationOut:
    preview = _build_preview(repo, transition_id, channel)
    if preview.dedupe_key != payload.dedupe_key:
        raise HTTPException(
            status_code=400,
            detail="Invalid dedupe key - notification may have already been processed",
        )

    if payload.suppress:
        log_event("service.notification_suppressed", trace_id=transition_id, channel=channel)
        return SendNotificationOut(sent=False, suppressed=True)

    if repo.get_dispatch(payload.dedupe_key) is not None:
        log_event("service.notification_duplicate", trace_id=transition_id, channel=channel)
        return SendNotificationOut(sent=False, suppressed=True)

    recipient_ids = [r.user_id for r in preview.recipients]
    if payload.recipient_ids:
        recipient_ids = [rid for rid in recipient_ids if rid in payload.recipient_ids]
    if not recipient_ids:
        return SendNotificationOut(sent=False, suppressed=True)

    repo.record_dispatch(
        dedupe_key=payload.dedupe_key,
        transition_id=transition_id,
        channel=channel,
        recipient_ids=recipient_ids,
    )
    log_event(
        "service.notification_sent",
        trace_id=transition_id,
        channel=channel,
        recipients=len(recipient_ids),
        email=payload.send_email,
        push=payload.send_push,
        sms=payload.send_sms,
    )
    return SendNotificationOut(sent=True, suppressed=False)


# ------------------------------
# Helper functions
# ------------------------------

def _require_work_item(repo: PracticeRepository, work_item_id: str) -> WorkItem:
    item = repo.get_work_item(work_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return item


def _commit_out(transition: StageTransition) -> CommitOut:
    return CommitOut(
        transition_id=transition.id,
        new_stage_id=transition.to_stage_id,
        committed_at=transition.committed_at,
    )


def _build_preview(
    repo: PracticeRepository,
    transition_id: str,
    channel: NotificationChannel,
) -> NotificationPreview:
    transition = repo.get_transition(transition_id)
    if transition is None:
        raise HTTPException(status_code=404, detail="Transition not found")

    item = repo.get_work_item(transition.work_item_id)
    stage: Stage | None = repo.get_stage(transition.to_stage_id)
    stage_name = stage.name if stage else transition.to_stage_id
    description = (item.description if item else None) or transition.work_item_id

    raw = ((stage.recipients if stage else None) or {}).get(channel, [])
    recipients = sorted(
        (NotificationRecipient.model_validate(r) for r in raw),
        key=lambda r: r.user_id,
    )
    recipient_ids = ",".join(r.user_id for r in recipients)

    lines = [f'The project "{description}" has been moved to stage: {stage_name}']
    if transition.notes:
        lines.append(f"Notes: {transition.notes}")

    return NotificationPreview(
        transition_id=transition_id,
        channel=channel,
        dedupe_key=f"{transition.work_item_id}:{transition_id}:{channel}:{recipient_ids}",
        recipients=tuple(recipients),
        subject=f"Project Stage Update: {description} - {stage_name}",
        body="\n".join(lines),
    )


# ------------------------------
# App factory
# ------------------------------

def create_app(session_factory: sessionmaker | None = None) -> FastAPI:
    """Build the practice service app.

    With a ``session_factory`` the app uses that database instead of the
    configured one; tables are expected to exist already.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if session_factory is None:
            init_db()
        yield

    app = FastAPI(
        title="Stage Transition Practice Service",
        version="1.0.0",
        description="Authoritative backend for stage transitions",
        lifespan=lifespan,
    )
    app.include_router(router)

    if session_factory is not None:
        def _get_db() -> Iterator[Session]:
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db

    return app


app = create_app()
