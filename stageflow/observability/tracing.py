"""Tracing primitives for stage transitions.

Every transition attempt gets one trace id. Each phase that leaves the process
(upload, commit, query batch, notification) runs inside a Span, and every event
is written by ``log_event`` as a single JSON line on stdout.

In production, you'd likely export spans to an OTEL collector instead.
"""

from __future__ import annotations

import json
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator


@dataclass
class Span:
    name: str
    trace_id: str
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    parent_id: str | None = None
    start_ns: int = field(default_factory=time.monotonic_ns)
    end_ns: int | None = None
    status: str = 'ok'
    attributes: dict[str, Any] = field(default_factory=dict)

    def fail(self, error: str) -> None:
        self.status = 'error'
        self.attributes['error'] = error

    def end(self) -> None:
        if self.end_ns is None:
            self.end_ns = time.monotonic_ns()

    @property
    def duration_ms(self) -> float | None:
        if self.end_ns is None:
            return None
        return (self.end_ns - self.start_ns) / 1_000_000.0

    def as_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'span_id': self.span_id,
            'parent_id': self.parent_id,
            'status': self.status,
            'duration_ms': self.duration_ms,
            'attributes': self.attributes,
        }


def new_trace_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def traced(name: str, *, trace_id: str, parent: Span | None = None, **attributes: Any) -> Iterator[Span]:
    """Run a block inside a span and log it when the block exits.

    Exceptions (cancellation included) mark the span failed and propagate.
    """
    span = Span(
        name=name,
        trace_id=trace_id,
        parent_id=parent.span_id if parent else None,
        attributes=dict(attributes),
    )
    try:
        yield span
    except BaseException as exc:
        span.fail(type(exc).__name__ if not str(exc) else str(exc))
        raise
    finally:
        span.end()
        log_event('span.end', trace_id=trace_id, span=span)


def log_event(event: str, *, trace_id: str, span: Span | None = None, **fields: Any) -> None:
    payload: dict[str, Any] = {
        'ts': datetime.now(timezone.utc).isoformat(),
        'event': event,
        'trace_id': trace_id,
        **fields,
    }
    if span is not None:
        payload['span'] = span.as_dict()
    print(json.dumps(payload, ensure_ascii=False, default=str))
