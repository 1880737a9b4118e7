from .tracing import Span, log_event, new_trace_id, traced
