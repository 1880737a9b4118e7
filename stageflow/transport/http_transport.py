"""HTTP transport that calls the practice service."""

from __future__ import annotations

from typing import Any, Sequence, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from stageflow.core.errors import TransportError
from stageflow.domain.stages import (
    ChannelOptions,
    FileMeta,
    FileUpload,
    NotificationChannel,
    NotificationPreview,
    QueryRecord,
    TransitionRequest,
)
from .base import (
    CommitReceipt,
    NotificationSendReceipt,
    QueryBatchReceipt,
    UploadDestination,
)


class HttpTransitionTransport:
    """Execute transition operations by calling the practice service over HTTP.

    Every non-2xx response, every network failure and every 2xx body that does
    not parse is raised as TransportError, so callers only ever handle one exception type at this boundary.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 30.0,
        upload_timeout: float = 120.0,
    ) -> None:
        """Create an HTTP transport.

        Args:
            base_url: Base URL of the practice service (e.g. http://practice-svc:8001).
            client: Optional injected httpx client for testing / transport control.
            timeout: Timeout for JSON calls, in seconds.
            upload_timeout: Timeout for raw byte transfers, in seconds.
        """
        self._base_url = base_url.rstrip('/')
        self._client = client
        self._timeout = timeout
        self._upload_timeout = upload_timeout

    async def request_upload_destination(
        self, work_item_id: str, meta: FileMeta
    ) -> UploadDestination:
        data = await self._request_json(
            'POST',
            f'/work-items/{work_item_id}/attachments/upload-url',
            json=meta.model_dump(),
        )
        return _parse(UploadDestination, data)

    async def transfer_bytes(self, destination: UploadDestination, file: FileUpload) -> None:
        await self._send(
            'PUT',
            destination.url,
            content=file.content,
            headers={'Content-Type': file.file_type or 'application/octet-stream'},
            timeout=self._upload_timeout,
        )

    async def commit_transition(
        self, work_item_id: str, transition_id: str, request: TransitionRequest
    ) -> CommitReceipt:
        body = {
            'transition_id': transition_id,
            **request.model_dump(
                mode='json',
                include={'target_stage_id', 'reason_id', 'notes', 'attachments', 'approval_responses'},
            ),
        }
        data = await self._request_json('PATCH', f'/work-items/{work_item_id}/stage', json=body)
        return _parse(CommitReceipt, data)

    async def create_query_batch(
        self, work_item_id: str, transition_id: str, queries: Sequence[QueryRecord]
    ) -> QueryBatchReceipt:
        body = {
            'transition_id': transition_id,
            'queries': [q.model_dump(mode='json') for q in queries],
        }
        data = await self._request_json('POST', f'/work-items/{work_item_id}/queries/bulk', json=body)
        return _parse(QueryBatchReceipt, data)

    async def preview_notification(
        self, transition_id: str, channel: NotificationChannel
    ) -> NotificationPreview:
        data = await self._request_json(
            'POST', f'/transitions/{transition_id}/notifications/{channel}/preview'
        )
        return _parse(NotificationPreview, data)

    async def send_notification(
        self, transition_id: str, dedupe_key: str, options: ChannelOptions
    ) -> NotificationSendReceipt:
        body = {'dedupe_key': dedupe_key, **options.model_dump(mode='json')}
        data = await self._request_json(
            'POST',
            f'/transitions/{transition_id}/notifications/{options.channel}/send',
            json=body,
        )
        return _parse(NotificationSendReceipt, data)

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f'{self._base_url}{path}'
        resp = await self._send(method, url, timeout=self._timeout, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f'{method} {url} returned a body that is not JSON',
                status_code=resp.status_code,
                payload={'detail': resp.text or None},
            ) from exc

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f'{method} {url} failed: {exc}') from exc

        if resp.is_error:
            payload = _error_payload(resp)
            raise TransportError(
                str(payload.get('detail') or payload.get('message') or f'HTTP {resp.status_code}'),
                status_code=resp.status_code,
                payload=payload,
            )
        return resp


_M = TypeVar('_M', bound=BaseModel)


def _parse(model: type[_M], data: Any) -> _M:
    """Validate a 2xx body, raising TransportError when it has the wrong shape."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise TransportError(
            f'Unexpected {model.__name__} response: {exc.error_count()} invalid field(s)',
            payload={'detail': data if isinstance(data, dict) else str(data)},
        ) from exc


def _error_payload(resp: httpx.Response) -> dict[str, Any]:
    """Normalize a service error body into a flat dict.

    FastAPI nests structured errors under ``detail``; flatten that so
    ``failed_fields`` is reachable at the top level.
    """
    try:
        body = resp.json()
    except ValueError:
        return {'detail': resp.text or None}

    if not isinstance(body, dict):
        return {'detail': str(body)}

    detail = body.get('detail')
    if isinstance(detail, dict):
        return {**body, **detail, 'detail': detail.get('message')}
    return body
