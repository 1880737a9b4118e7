from __future__ import annotations

import json

import httpx
import pytest
from httpx import MockTransport, Request, Response
from pydantic import ValidationError

from stageflow.core.errors import TransportError
from stageflow.domain.stages import (
    ApprovalResponse,
    ChannelOptions,
    FileMeta,
    FileUpload,
    QueryRecord,
    TransitionRequest,
)
from stageflow.transport import HttpTransitionTransport, UploadDestination

from tests.fixtures.practice_service_stub import PracticeServiceStub


@pytest.mark.anyio
async def test_upload_destination_and_transfer() -> None:
    stub = PracticeServiceStub()

    async with httpx.AsyncClient(transport=MockTransport(stub), base_url="http://test") as client:
        transport = HttpTransitionTransport(base_url="http://test/", client=client)

        destination = await transport.request_upload_destination(
            "w-1", FileMeta(file_name="a.pdf", file_type="application/pdf", file_size=3)
        )
        await transport.transfer_bytes(destination, FileUpload(file_name="a.pdf", content=b"abc"))

    assert destination.object_path == "stage-change-attachments/w-1/a.pdf"
    assert stub.calls == [
        ("POST", "/work-items/w-1/attachments/upload-url"),
        ("PUT", "/uploads/stage-change-attachments/w-1/a.pdf"),
    ]


@pytest.mark.anyio
async def test_commit_sends_transition_id_and_request_fields() -> None:
    seen: dict = {}

    def handler(request: Request) -> Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return Response(
            200,
            json={
                "transition_id": "tr-1",
                "new_stage_id": "s-2",
                "committed_at": "2026-01-05T10:00:00+00:00",
            },
        )

    async with httpx.AsyncClient(transport=MockTransport(handler)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        receipt = await transport.commit_transition(
            "w-1",
            "tr-1",
            TransitionRequest(
                work_item_id="w-1",
                target_stage_id="s-2",
                reason_id="r-1",
                notes="done",
                approval_responses=(ApprovalResponse(field_id="f", value=True),),
            ),
        )

    assert receipt.new_stage_id == "s-2"
    assert seen["method"] == "PATCH"
    assert seen["path"] == "/work-items/w-1/stage"
    assert seen["body"] == {
        "transition_id": "tr-1",
        "target_stage_id": "s-2",
        "reason_id": "r-1",
        "notes": "done",
        "attachments": [],
        "approval_responses": [{"field_id": "f", "value": True}],
    }


@pytest.mark.anyio
async def test_structured_error_detail_is_flattened() -> None:
    stub = PracticeServiceStub()
    stub.commit_status = 400
    stub.commit_detail = {
        "message": "Stage approval requirements not met",
        "failed_fields": ["signed_off"],
        "stage_approval_required": True,
    }

    async with httpx.AsyncClient(transport=MockTransport(stub)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        with pytest.raises(TransportError) as exc:
            await transport.commit_transition(
                "w-1", "tr-1", TransitionRequest(work_item_id="w-1", target_stage_id="s-2", reason_id="r")
            )

    assert exc.value.status_code == 400
    assert exc.value.message == "Stage approval requirements not met"
    assert exc.value.failed_fields == ["signed_off"]


@pytest.mark.anyio
async def test_plain_error_detail_is_used_verbatim() -> None:
    stub = PracticeServiceStub()
    stub.commit_status = 404
    stub.commit_detail = "Project not found"

    async with httpx.AsyncClient(transport=MockTransport(stub)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        with pytest.raises(TransportError) as exc:
            await transport.commit_transition(
                "w-1", "tr-1", TransitionRequest(work_item_id="w-1", target_stage_id="s-2", reason_id="r")
            )

    assert exc.value.status_code == 404
    assert str(exc.value) == "Project not found"


@pytest.mark.anyio
async def test_network_error_has_no_status_code() -> None:
    def handler(request: Request) -> Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=MockTransport(handler)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        with pytest.raises(TransportError) as exc:
            await transport.transfer_bytes(
                UploadDestination(url="http://storage.test/uploads/x", object_path="x"),
                FileUpload(file_name="x", content=b"x"),
            )

    assert exc.value.status_code is None
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.anyio
async def test_query_batch_receipt_reports_failures() -> None:
    stub = PracticeServiceStub()
    stub.query_failures = [{"query_id": "q2", "message": "Query already exists"}]

    async with httpx.AsyncClient(transport=MockTransport(stub)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        receipt = await transport.create_query_batch(
            "w-1",
            "tr-1",
            [
                QueryRecord(work_item_id="w-1", query_id="q1", description="a"),
                QueryRecord(work_item_id="w-1", query_id="q2", description="b"),
            ],
        )

    assert receipt.created_count == 1
    assert [f.query_id for f in receipt.failures] == ["q2"]


@pytest.mark.anyio
async def test_preview_and_send_round_trip_the_dedupe_key() -> None:
    stub = PracticeServiceStub()

    async with httpx.AsyncClient(transport=MockTransport(stub)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        preview = await transport.preview_notification("tr-1", "client")
        sent = await transport.send_notification("tr-1", preview.dedupe_key, ChannelOptions(channel="client"))
        with pytest.raises(TransportError) as exc:
            await transport.send_notification("tr-1", "forged", ChannelOptions(channel="client"))

    assert preview.channel == "client"
    assert [r.user_id for r in preview.recipients] == ["u-1", "u-2"]
    assert sent.sent is True
    assert exc.value.status_code == 400
    assert exc.value.message == "Invalid dedupe key - notification may have already been processed"
    assert ("POST", "/transitions/tr-1/notifications/client/send") in stub.calls


@pytest.mark.anyio
async def test_non_json_success_body_is_a_transport_error() -> None:
    def handler(request: Request) -> Response:
        return Response(200, text="<html>ok</html>")

    async with httpx.AsyncClient(transport=MockTransport(handler)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        with pytest.raises(TransportError) as exc:
            await transport.create_query_batch(
                "w-1", "tr-1", [QueryRecord(work_item_id="w-1", query_id="q1", description="a")]
            )

    assert exc.value.status_code == 200
    assert exc.value.message == "POST http://test/work-items/w-1/queries/bulk returned a body that is not JSON"
    assert exc.value.payload == {"detail": "<html>ok</html>"}
    assert isinstance(exc.value.__cause__, ValueError)


@pytest.mark.anyio
async def test_wrong_shape_success_body_is_a_transport_error() -> None:
    def handler(request: Request) -> Response:
        return Response(200, json={"unexpected": True})

    async with httpx.AsyncClient(transport=MockTransport(handler)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        with pytest.raises(TransportError) as exc:
            await transport.commit_transition(
                "w-1", "tr-1", TransitionRequest(work_item_id="w-1", target_stage_id="s-2", reason_id="r")
            )

    assert exc.value.status_code is None
    assert exc.value.message.startswith("Unexpected CommitReceipt response")
    assert exc.value.failed_fields == []
    assert isinstance(exc.value.__cause__, ValidationError)


@pytest.mark.anyio
async def test_non_object_success_body_is_a_transport_error() -> None:
    def handler(request: Request) -> Response:
        return Response(200, json=["not", "a", "receipt"])

    async with httpx.AsyncClient(transport=MockTransport(handler)) as client:
        transport = HttpTransitionTransport(base_url="http://test", client=client)
        with pytest.raises(TransportError) as exc:
            await transport.preview_notification("tr-1", "staff")

    assert exc.value.message.startswith("Unexpected NotificationPreview response")
