"""
Request tracing for the retrieval pipeline.

Every request gets a correlation id and a start time that all stages can
read without the id being passed around:

    RequestTrace.initialize()
    logger.info(f"[{RequestTrace.trace_id()}] planning...")
    ...
    RequestTrace.clear()

Values live in context variables, so each thread (and each asyncio task)
sees its own trace. Nothing is cleared automatically: a worker thread
that serves a second request without `clear()` still carries the first
request's id.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from datetime import timedelta

NO_TRACE_ID = "NO_TRACE_ID"

_trace_id: ContextVar[str | None] = ContextVar("retrieval_core_trace_id", default=None)
_start_time: ContextVar[float | None] = ContextVar("retrieval_core_trace_start", default=None)


class RequestTrace:
    """Per-request correlation id and elapsed-time tracking."""

    @staticmethod
    def initialize(custom_id: str | None = None) -> None:
        """Start a trace for the current execution context."""
        _trace_id.set(custom_id if custom_id else str(uuid.uuid4()))
        _start_time.set(time.monotonic())

    @staticmethod
    def trace_id() -> str:
        """Active trace id, or NO_TRACE_ID when not initialized."""
        value = _trace_id.get()
        return value if value is not None else NO_TRACE_ID

    @staticmethod
    def is_initialized() -> bool:
        return _trace_id.get() is not None

    @staticmethod
    def elapsed() -> timedelta:
        """Time since initialize(); zero when not initialized."""
        start = _start_time.get()
        if start is None:
            return timedelta(0)
        return timedelta(seconds=time.monotonic() - start)

    @staticmethod
    def elapsed_formatted() -> str:
        millis = int(RequestTrace.elapsed().total_seconds() * 1000)
        if millis < 1000:
            return f"{millis}ms"
        elif millis < 60000:
            return f"{millis / 1000.0:.2f}s"
        else:
            return f"{millis / 60000.0:.2f}m"

    @staticmethod
    def trace_info() -> str:
        return f"[{RequestTrace.trace_id()}] (elapsed: {RequestTrace.elapsed_formatted()})"

    @staticmethod
    def clear() -> None:
        """Drop the trace for the current execution context (call at request end)."""
        _trace_id.set(None)
        _start_time.set(None)


class TraceIdFilter(logging.Filter):
    """
    Adds `trace_id` to every log record.

    Attach to a handler and use `%(trace_id)s` in its format string.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = RequestTrace.trace_id()
        return True
