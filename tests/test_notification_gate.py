from __future__ import annotations

import pytest

from stageflow.core.errors import NotificationStateError
from stageflow.domain.stages import ChannelOptions
from stageflow.runtime import NotificationDedupGate

from tests.fixtures.fake_transport import FakeTransitionTransport


@pytest.mark.anyio
async def test_repeated_send_with_same_key_is_suppressed_not_an_error() -> None:
    transport = FakeTransitionTransport()
    gate = NotificationDedupGate(transport=transport)

    preview = await gate.preview(trace_id="t", transition_id="tr-1", channel="staff")
    assert preview.dedupe_key == "abc"

    first = await gate.send(trace_id="t", transition_id="tr-1", dedupe_key="abc", options=ChannelOptions())
    second = await gate.send(trace_id="t", transition_id="tr-1", dedupe_key="abc", options=ChannelOptions())

    assert first.sent is True and first.suppressed is False
    assert first.message == "Notification sent"
    assert second.sent is False and second.suppressed is True
    assert second.message is None
    assert len(transport.sends) == 2


@pytest.mark.anyio
async def test_send_without_preview_is_refused() -> None:
    transport = FakeTransitionTransport()
    gate = NotificationDedupGate(transport=transport)

    with pytest.raises(NotificationStateError):
        await gate.send(trace_id="t", transition_id="tr-1", dedupe_key="abc", options=ChannelOptions())

    assert transport.sends == []


@pytest.mark.anyio
async def test_send_with_key_from_another_channel_is_refused() -> None:
    transport = FakeTransitionTransport()
    gate = NotificationDedupGate(transport=transport)
    await gate.preview(trace_id="t", transition_id="tr-1", channel="staff")

    with pytest.raises(NotificationStateError):
        await gate.send(
            trace_id="t",
            transition_id="tr-1",
            dedupe_key="abc",
            options=ChannelOptions(channel="client"),
        )

    with pytest.raises(NotificationStateError):
        await gate.send(trace_id="t", transition_id="tr-1", dedupe_key="other", options=ChannelOptions())

    assert gate.issued_key("tr-1", "staff") == "abc"
    assert gate.issued_key("tr-1", "client") is None


@pytest.mark.anyio
async def test_user_suppressed_send_reports_suppressed() -> None:
    transport = FakeTransitionTransport()
    gate = NotificationDedupGate(transport=transport)
    await gate.preview(trace_id="t", transition_id="tr-1")

    outcome = await gate.send(
        trace_id="t",
        transition_id="tr-1",
        dedupe_key="abc",
        options=ChannelOptions(suppress=True),
    )

    assert outcome.sent is False
    assert outcome.suppressed is True


@pytest.mark.anyio
async def test_forget_drops_keys_for_every_channel() -> None:
    transport = FakeTransitionTransport()
    gate = NotificationDedupGate(transport=transport)
    await gate.preview(trace_id="t", transition_id="tr-1", channel="staff")
    await gate.preview(trace_id="t", transition_id="tr-1", channel="client")
    await gate.preview(trace_id="t", transition_id="tr-2", channel="staff")

    gate.forget("tr-1")

    assert gate.issued_key("tr-1", "staff") is None
    assert gate.issued_key("tr-1", "client") is None
    assert gate.issued_key("tr-2", "staff") == "abc"
    with pytest.raises(NotificationStateError):
        await gate.send(trace_id="t", transition_id="tr-1", dedupe_key="abc", options=ChannelOptions())


@pytest.mark.anyio
async def test_issued_keys_are_capped_oldest_first() -> None:
    gate = NotificationDedupGate(transport=FakeTransitionTransport(), max_issued=2)

    for transition_id in ("tr-1", "tr-2", "tr-3"):
        await gate.preview(trace_id="t", transition_id=transition_id, channel="staff")

    assert gate.issued_key("tr-1", "staff") is None
    assert gate.issued_key("tr-2", "staff") == "abc"
    assert gate.issued_key("tr-3", "staff") == "abc"
