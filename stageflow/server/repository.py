# ============================================================
# DB access layer for the practice service
# ============================================================
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from stageflow.db.models import (
    NotificationDispatch,
    Query,
    Stage,
    StageTransition,
    Upload,
    WorkItem,
)
from stageflow.domain.stages import AttachmentRef, FileMeta, QueryRecord


class PracticeRepositoryProtocol(Protocol):
    def get_work_item(self, work_item_id: str) -> WorkItem | None:
        """Get a work item by id"""
        ...

    def get_stage(self, stage_id: str) -> Stage | None:
        """Get a stage by id"""
        ...

    def get_transition(self, transition_id: str) -> StageTransition | None:
        """Get a committed transition by id"""
        ...

    def commit_transition(
            self,
            *,
            work_item: WorkItem,
            stage: Stage,
            transition_id: str,
            reason_id: str,
            notes: str,
            attachments: Sequence[AttachmentRef],
    ) -> StageTransition:
        """Move a work item into a stage and record the transition"""
        ...


class PracticeRepository(PracticeRepositoryProtocol):
    def __init__(self, db: Session):
        self.db = db

    # --- Stages & work items ---

    def add_stage(
            self,
            stage_id: str,
            name: str,
            *,
            approval_fields: list[dict[str, Any]] | None = None,
            recipients: dict[str, list[dict[str, Any]]] | None = None,
    ) -> Stage:
        stage = Stage(
            id=stage_id,
            name=name,
            approval_fields=approval_fields or [],
            recipients=recipients or {},
        )
        self.db.add(stage)
        self.db.commit()
        return stage

    def add_work_item(self, work_item_id: str, stage_id: str, description: str | None = None) -> WorkItem:
        item = WorkItem(
            id=work_item_id,
            stage_id=stage_id,
            description=description,
            stage_entered_at=datetime.now(timezone.utc),
        )
        self.db.add(item)
        self.db.commit()
        return item

    def get_work_item(self, work_item_id: str) -> WorkItem | None:
        return self.db.get(WorkItem, work_item_id)

    def get_stage(self, stage_id: str) -> Stage | None:
        return self.db.get(Stage, stage_id)

    # --- Transitions ---

    def get_transition(self, transition_id: str) -> StageTransition | None:
        return self.db.get(StageTransition, transition_id)

    def commit_transition(
            self,
            *,
            work_item: WorkItem,
            stage: Stage,
            transition_id: str,
            reason_id: str,
            notes: str,
            attachments: Sequence[AttachmentRef],
    ) -> StageTransition:
        now = datetime.now(timezone.utc)
        transition = StageTransition(
            id=transition_id,
            work_item_id=work_item.id,
            from_stage_id=work_item.stage_id,
            to_stage_id=stage.id,
            reason_id=reason_id,
            notes=notes or None,
            attachments=[a.model_dump() for a in attachments],
            committed_at=now,
        )
        work_item.stage_id = stage.id
        work_item.stage_entered_at = now

        self.db.add(transition)
        self.db.commit()
        return transition

    # --- Uploads ---

    def create_upload(self, work_item_id: str, meta: FileMeta) -> Upload:
        upload = Upload(
            object_path=f"stage-change-attachments/{work_item_id}/{uuid.uuid4().hex}/{meta.file_name}",
            work_item_id=work_item_id,
            file_name=meta.file_name,
            file_type=meta.file_type,
            file_size=meta.file_size,
        )
        self.db.add(upload)
        self.db.commit()
        return upload

    def get_upload(self, object_path: str) -> Upload | None:
        return self.db.get(Upload, object_path)

    def mark_received(self, upload: Upload, size: int) -> Upload:
        upload.received_bytes = size
        self.db.commit()
        return upload

    # --- Queries ---

    def create_queries(
            self,
            *,
            work_item_id: str,
            transition_id: str,
            records: Sequence[QueryRecord],
    ) -> tuple[int, list[dict[str, str]]]:
        """
        Insert a batch of queries.

        Records that belong to another work item, or whose id already exists,
        are reported back instead of aborting the batch.
        """
        created = 0
        failures: list[dict[str, str]] = []

        for record in records:
            if record.work_item_id != work_item_id:
                failures.append({"query_id": record.query_id, "message": "Query belongs to another project"})
                continue
            if self.db.get(Query, record.query_id) is not None:
                failures.append({"query_id": record.query_id, "message": "Query already exists"})
                continue

            self.db.add(
                Query(
                    id=record.query_id,
                    work_item_id=work_item_id,
                    transition_id=transition_id,
                    date=record.date,
                    description=record.description,
                    money_in=str(record.money_in) if record.money_in is not None else None,
                    money_out=str(record.money_out) if record.money_out is not None else None,
                    our_query=record.our_query,
                    status=record.status,
                )
            )
            created += 1

        self.db.commit()
        return created, failures

    def list_queries(self, work_item_id: str) -> list[Query]:
        stmt = select(Query).where(Query.work_item_id == work_item_id).order_by(Query.id)
        return list(self.db.scalars(stmt))

    # --- Notifications ---

    def get_dispatch(self, dedupe_key: str) -> NotificationDispatch | None:
        return self.db.get(NotificationDispatch, dedupe_key)

    def record_dispatch(
            self,
            *,
            dedupe_key: str,
            transition_id: str,
            channel: str,
            recipient_ids: list[str],
    ) -> NotificationDispatch:
        dispatch = NotificationDispatch(
            dedupe_key=dedupe_key,
            transition_id=transition_id,
            channel=channel,
            recipient_ids=recipient_ids,
            sent_at=datetime.now(timezone.utc),
        )
        self.db.add(dispatch)
        self.db.commit()
        return dispatch
