"""
ReasoningContext - request-scoped state shared by all pipeline stages.

Holds one ReasoningState plus a free-form key/value bag, reachable from
any stage without parameter passing:

    ToolCandidateFinder:  ReasoningContext.set_state(state)
    later stages:         state = ReasoningContext.get_state()
                          ReasoningContext.put("search_plan", plan)

Storage is a pair of context variables, so concurrent requests on
different threads or asyncio tasks never see each other's values. A task
started from a context that already holds entries sees them, but writes
replace the bag instead of mutating it, so later writes stay local. The
caller must clear the context at request end; `request_scope()` does
that (and clears RequestTrace) on exit.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

from retrieval_core.reasoning_state import ReasoningState
from retrieval_core.request_trace import RequestTrace

logger = logging.getLogger(__name__)

_state: ContextVar[ReasoningState | None] = ContextVar("retrieval_core_reasoning_state", default=None)
_bag: ContextVar[dict[str, Any] | None] = ContextVar("retrieval_core_context_bag", default=None)


def _write_bag() -> dict[str, Any]:
    # copy before writing: child contexts share the parent's dict object
    bag = dict(_bag.get() or {})
    _bag.set(bag)
    return bag


class ReasoningContext:
    """Request-scoped associative store with a single ReasoningState slot."""

    @staticmethod
    def set_state(state: ReasoningState | None) -> None:
        _state.set(state)

    @staticmethod
    def get_state() -> ReasoningState | None:
        return _state.get()

    @staticmethod
    def put(key: str, value: Any) -> None:
        _write_bag()[key] = value

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        bag = _bag.get()
        if bag is None:
            return default
        return bag.get(key, default)

    @staticmethod
    def contains_key(key: str) -> bool:
        bag = _bag.get()
        return bag is not None and key in bag

    @staticmethod
    def remove(key: str) -> Any:
        if not ReasoningContext.contains_key(key):
            return None
        return _write_bag().pop(key)

    @staticmethod
    def snapshot() -> dict[str, Any]:
        """Shallow copy of the key/value bag."""
        return dict(_bag.get() or {})

    @staticmethod
    def size() -> int:
        return len(_bag.get() or {})

    @staticmethod
    def clear() -> None:
        """Drop the state and the bag for the current execution context."""
        _state.set(None)
        _bag.set(None)

    @staticmethod
    def debug() -> str:
        bag = _bag.get() or {}
        return (
            f"ReasoningContext(state={_state.get()}, "
            f"context_size={len(bag)}, context={bag})"
        )


@contextmanager
def request_scope(trace_id: str | None = None) -> Iterator[str]:
    """
    Open a request: initialize the trace, yield its id, then clear the
    trace and the reasoning context on exit, including on error.
    """
    RequestTrace.initialize(trace_id)
    active_id = RequestTrace.trace_id()
    # requests always start with an empty context
    ReasoningContext.clear()
    logger.debug(f"[{active_id}] request scope opened")
    try:
        yield active_id
    finally:
        logger.debug(f"[{active_id}] request scope closed after {RequestTrace.elapsed_formatted()}")
        ReasoningContext.clear()
        RequestTrace.clear()
