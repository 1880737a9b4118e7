from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

from stageflow.core.errors import TransportError
from stageflow.domain.stages import AttachmentRef, FileUpload, PendingQuery
from stageflow.observability import log_event, traced
from stageflow.transport import TransitionTransport

from .results import AttachmentFailure, QueryBatchResult, QueryFailure, UploadBatchResult


class SideChannelBatchManager:
    """
    Handles the effects that ride alongside a stage change.

    Responsibilities:
    - Upload selected files (fan-out, one task per file)
    - Persist drafted queries as one batch once the transition has committed

    Non-responsibilities:
    - Deciding whether the transition succeeds
    - Retries
    """

    def __init__(self, *, transport: TransitionTransport, max_concurrent_uploads: int = 4):
        self._transport = transport
        self._max_concurrent_uploads = max(1, max_concurrent_uploads)

    async def upload_attachments(
        self,
        *,
        trace_id: str,
        work_item_id: str,
        files: Sequence[FileUpload],
    ) -> UploadBatchResult:
        """
        Upload every file independently.

        A failed file is dropped from the selection and reported; it never
        cancels the others. Returns only after every file has a known result.
        """
        if not files:
            return UploadBatchResult()

        log_event(
            "attachments.upload.start",
            trace_id=trace_id,
            work_item=work_item_id,
            size=len(files),
        )

        slots = asyncio.Semaphore(self._max_concurrent_uploads)

        async def run(file: FileUpload) -> AttachmentRef | AttachmentFailure:
            async with slots:
                return await self._upload_one(trace_id=trace_id, work_item_id=work_item_id, file=file)

        outcomes = await asyncio.gather(*(run(f) for f in files))

        uploaded = tuple(o for o in outcomes if isinstance(o, AttachmentRef))
        failures = tuple(o for o in outcomes if isinstance(o, AttachmentFailure))

        log_event(
            "attachments.upload.end",
            trace_id=trace_id,
            work_item=work_item_id,
            uploaded=len(uploaded),
            failed=[f.file_name for f in failures],
        )

        return UploadBatchResult(
            uploaded=uploaded,
            failures=failures,
            selected=tuple(a.file_name for a in uploaded),
        )

    async def _upload_one(
        self,
        *,
        trace_id: str,
        work_item_id: str,
        file: FileUpload,
    ) -> AttachmentRef | AttachmentFailure:
        meta = file.meta()

        with traced("attachments.upload", trace_id=trace_id, file_name=meta.file_name) as span:
            try:
                destination = await self._transport.request_upload_destination(work_item_id, meta)
                await self._transport.transfer_bytes(destination, file)
            except TransportError as exc:
                reason = exc.message
            except Exception as exc:  # noqa: BLE001 - one file must not sink the batch
                reason = str(exc) or type(exc).__name__
            else:
                return AttachmentRef(
                    file_name=meta.file_name,
                    file_type=meta.file_type,
                    file_size=meta.file_size,
                    object_path=destination.object_path,
                )

            span.fail(reason)
            return AttachmentFailure(
                file_name=meta.file_name,
                message=f"Failed to upload file: {meta.file_name} ({reason})",
            )

    async def create_queries(
        self,
        *,
        trace_id: str,
        work_item_id: str,
        transition_id: str,
        pending: Iterable[PendingQuery],
    ) -> QueryBatchResult:
        """
        Persist drafted queries after a committed transition.

        Never raises on transport failure: a failed batch marks every
        submitted query as failed instead.
        """
        valid = [q for q in pending if q.is_meaningful]
        if not valid:
            return QueryBatchResult()

        records = [q.to_record(work_item_id) for q in valid]

        with traced("queries.batch", trace_id=trace_id, size=len(records)) as span:
            try:
                receipt = await self._transport.create_query_batch(work_item_id, transition_id, records)
            except TransportError as exc:
                span.fail(exc.message)
                log_event(
                    "queries.batch.failed",
                    trace_id=trace_id,
                    transition_id=transition_id,
                    error=exc.message,
                )
                return QueryBatchResult(
                    submitted=len(records),
                    failures=tuple(QueryFailure(query_id=q.id, message=exc.message) for q in valid),
                )

        failures = tuple(QueryFailure(query_id=f.query_id, message=f.message) for f in receipt.failures)
        log_event(
            "queries.batch.ok" if not failures else "queries.batch.partial",
            trace_id=trace_id,
            transition_id=transition_id,
            created=receipt.created_count,
            failed=len(failures),
        )
        return QueryBatchResult(
            submitted=len(records),
            created_count=receipt.created_count,
            failures=failures,
        )
