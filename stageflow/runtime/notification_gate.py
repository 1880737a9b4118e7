"""Two-phase notification gate: preview, then send.

The dedupe key is an opaque capability issued by the service. The gate only
refuses to send without a key it was actually given for that transition and
channel; whether a repeated send goes out is the service's decision.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

from stageflow.core.errors import NotificationStateError
from stageflow.domain.stages import ChannelOptions, NotificationChannel, NotificationPreview
from stageflow.observability import log_event, traced
from stageflow.transport import TransitionTransport


@dataclass(frozen=True)
class NotificationOutcome:
    sent: bool
    suppressed: bool

    @property
    def message(self) -> str | None:
        if self.sent:
            return "Notification sent"
        return None


class NotificationDedupGate:
    def __init__(self, *, transport: TransitionTransport, max_issued: int = 2000) -> None:
        self._transport = transport
        self._max_issued = max(1, max_issued)
        self._lock = threading.Lock()
        self._issued: OrderedDict[tuple[str, str], str] = OrderedDict()

    async def preview(
        self,
        *,
        trace_id: str,
        transition_id: str,
        channel: NotificationChannel = "staff",
    ) -> NotificationPreview:
        with traced("notification.preview", trace_id=trace_id, channel=channel):
            preview = await self._transport.preview_notification(transition_id, channel)
        if not preview.dedupe_key:
            raise NotificationStateError(
                f"Preview for transition '{transition_id}' carried no dedupe key"
            )

        with self._lock:
            self._issued[(transition_id, channel)] = preview.dedupe_key
            self._issued.move_to_end((transition_id, channel))
            while len(self._issued) > self._max_issued:
                self._issued.popitem(last=False)

        log_event(
            "notification.preview",
            trace_id=trace_id,
            transition_id=transition_id,
            channel=channel,
            recipients=len(preview.recipients),
        )
        return preview

    async def send(
        self,
        *,
        trace_id: str,
        transition_id: str,
        dedupe_key: str,
        options: ChannelOptions,
    ) -> NotificationOutcome:
        with self._lock:
            issued = self._issued.get((transition_id, options.channel))

        if issued is None:
            raise NotificationStateError(
                f"No notification preview for transition '{transition_id}' on channel '{options.channel}'"
            )
        if dedupe_key != issued:
            raise NotificationStateError(
                f"Dedupe key was not issued for transition '{transition_id}' on channel '{options.channel}'"
            )

        # Single attempt; repeated user-initiated sends are made safe by the service.
        with traced("notification.send", trace_id=trace_id, channel=options.channel):
            receipt = await self._transport.send_notification(transition_id, dedupe_key, options)
        outcome = NotificationOutcome(
            sent=receipt.sent and not receipt.suppressed,
            suppressed=receipt.suppressed,
        )

        log_event(
            "notification.send",
            trace_id=trace_id,
            transition_id=transition_id,
            channel=options.channel,
            sent=outcome.sent,
            suppressed=outcome.suppressed,
        )
        return outcome

    def issued_key(self, transition_id: str, channel: NotificationChannel) -> str | None:
        with self._lock:
            return self._issued.get((transition_id, channel))

    def forget(self, transition_id: str) -> None:
        """Drop every key issued for a transition."""
        with self._lock:
            for key in [k for k in self._issued if k[0] == transition_id]:
                del self._issued[key]
