"""
Tests for request_trace.py and reasoning_context.py

Tests cover:
- Trace id / elapsed time lifecycle
- Key/value bag and ReasoningState slot
- Isolation between concurrent requests (threads and asyncio tasks)
- Requests started from a context that already holds entries
- Stale state on a reused worker when clear() is skipped
"""

import asyncio
import contextvars
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from retrieval_core.reasoning_context import ReasoningContext, request_scope
from retrieval_core.reasoning_state import ReasoningState
from retrieval_core.request_trace import NO_TRACE_ID, RequestTrace, TraceIdFilter


# =============================================================================
# Test: RequestTrace
# =============================================================================

class TestRequestTrace:
    def test_uninitialized(self):
        """Uninitialized trace returns the sentinel and zero elapsed time."""
        assert RequestTrace.trace_id() == NO_TRACE_ID
        assert RequestTrace.is_initialized() is False
        assert RequestTrace.elapsed() == timedelta(0)
        assert RequestTrace.elapsed_formatted() == "0ms"

    def test_generated_id(self):
        """Each initialize() without an id generates a new one."""
        RequestTrace.initialize()
        first = RequestTrace.trace_id()
        assert first != NO_TRACE_ID
        assert RequestTrace.is_initialized() is True

        RequestTrace.initialize()
        assert RequestTrace.trace_id() != first

    def test_custom_id(self):
        """A caller-supplied id is used as is."""
        RequestTrace.initialize("req-42")
        assert RequestTrace.trace_id() == "req-42"

    def test_empty_custom_id_generates_one(self):
        """An empty id is replaced with a generated one."""
        RequestTrace.initialize("")
        assert RequestTrace.trace_id() not in ("", NO_TRACE_ID)

    def test_elapsed_after_initialize(self):
        """Elapsed time starts at initialize() and shows up in trace_info()."""
        RequestTrace.initialize("req-1")
        elapsed = RequestTrace.elapsed()
        assert elapsed >= timedelta(0)
        assert RequestTrace.elapsed_formatted().endswith("ms")
        assert RequestTrace.trace_info().startswith("[req-1] (elapsed: ")

    def test_clear(self):
        """clear() returns to the uninitialized state."""
        RequestTrace.initialize("req-1")
        RequestTrace.clear()
        assert RequestTrace.trace_id() == NO_TRACE_ID
        assert RequestTrace.elapsed() == timedelta(0)

    def test_trace_id_filter(self):
        """The log filter stamps the active trace id on each record."""
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        RequestTrace.initialize("req-log")
        assert TraceIdFilter().filter(record) is True
        assert record.trace_id == "req-log"


# =============================================================================
# Test: ReasoningContext
# =============================================================================

class TestReasoningContext:
    def test_empty_before_use(self):
        """Reading before anything was stored is safe."""
        assert ReasoningContext.get_state() is None
        assert ReasoningContext.get("missing") is None
        assert ReasoningContext.get("missing", "default") == "default"
        assert ReasoningContext.contains_key("missing") is False
        assert ReasoningContext.snapshot() == {}
        assert ReasoningContext.size() == 0

    def test_put_get(self):
        """Stored values, None included, are readable by key."""
        ReasoningContext.put("plan", {"top_k": 3})
        ReasoningContext.put("flag", None)
        assert ReasoningContext.get("plan") == {"top_k": 3}
        assert ReasoningContext.contains_key("flag") is True
        assert ReasoningContext.size() == 2

    def test_snapshot_is_a_copy(self):
        """Changing a snapshot does not change the context."""
        ReasoningContext.put("a", 1)
        snapshot = ReasoningContext.snapshot()
        snapshot["b"] = 2
        assert ReasoningContext.contains_key("b") is False

    def test_snapshot_not_affected_by_later_writes(self):
        """A snapshot keeps the entries it was taken with."""
        ReasoningContext.put("a", 1)
        snapshot = ReasoningContext.snapshot()
        ReasoningContext.put("a", 2)
        ReasoningContext.remove("a")
        assert snapshot == {"a": 1}

    def test_remove(self):
        """remove() returns the value once, then None."""
        ReasoningContext.put("a", 1)
        assert ReasoningContext.remove("a") == 1
        assert ReasoningContext.remove("a") is None

    def test_state_slot(self):
        """The state slot returns the same object that was set."""
        state = ReasoningState("query")
        ReasoningContext.set_state(state)
        assert ReasoningContext.get_state() is state

    def test_clear(self):
        """clear() drops both the state and the bag."""
        ReasoningContext.set_state(ReasoningState("query"))
        ReasoningContext.put("a", 1)
        ReasoningContext.clear()
        assert ReasoningContext.get_state() is None
        assert ReasoningContext.snapshot() == {}

    def test_debug(self):
        """debug() reports the bag size."""
        ReasoningContext.put("a", 1)
        assert "context_size=1" in ReasoningContext.debug()


class TestRequestScope:
    def test_scope_initializes_and_clears(self):
        """The scope sets the trace id and clears everything on exit."""
        with request_scope("req-7") as trace_id:
            assert trace_id == "req-7"
            assert RequestTrace.trace_id() == "req-7"
            ReasoningContext.put("a", 1)
            ReasoningContext.set_state(ReasoningState("q"))

        assert RequestTrace.trace_id() == NO_TRACE_ID
        assert ReasoningContext.get_state() is None
        assert ReasoningContext.snapshot() == {}

    def test_scope_clears_on_error(self):
        """A failing stage still leaves a clean context behind."""
        with pytest.raises(RuntimeError):
            with request_scope("req-8"):
                ReasoningContext.put("a", 1)
                raise RuntimeError("stage failed")

        assert RequestTrace.is_initialized() is False
        assert ReasoningContext.size() == 0

    def test_scope_starts_empty(self):
        """Leftovers from an uncleared request are not visible in a new scope."""
        ReasoningContext.put("stale", True)
        with request_scope():
            assert ReasoningContext.contains_key("stale") is False


# =============================================================================
# Test: concurrency
# =============================================================================

class TestIsolation:
    def test_concurrent_threads_see_own_trace(self):
        """Two simultaneous requests never observe each other's id."""
        barrier = threading.Barrier(2)

        def request(trace_id):
            RequestTrace.initialize(trace_id)
            ReasoningContext.put("owner", trace_id)
            barrier.wait(timeout=5)
            seen = (RequestTrace.trace_id(), ReasoningContext.get("owner"))
            ReasoningContext.clear()
            RequestTrace.clear()
            return seen

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(request, "req-A")
            second = pool.submit(request, "req-B")
            assert first.result() == ("req-A", "req-A")
            assert second.result() == ("req-B", "req-B")

    def test_many_concurrent_requests(self):
        """Fifty scoped requests on eight workers each see only their own state."""
        def request(i):
            with request_scope(f"req-{i}"):
                state = ReasoningState(f"query {i}")
                ReasoningContext.set_state(state)
                return RequestTrace.trace_id(), ReasoningContext.get_state().original_query

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(request, range(50)))

        assert results == [(f"req-{i}", f"query {i}") for i in range(50)]

    def test_main_thread_unaffected_by_worker(self):
        """A worker's trace does not replace the caller's."""
        RequestTrace.initialize("main")

        def request():
            RequestTrace.initialize("worker")
            return RequestTrace.trace_id()

        with ThreadPoolExecutor(max_workers=1) as pool:
            assert pool.submit(request).result() == "worker"
        assert RequestTrace.trace_id() == "main"

    def test_reused_worker_without_clear_leaks(self):
        """Skipping clear() leaves the previous request visible on the same worker."""
        def leaky_request():
            RequestTrace.initialize("req-old")
            ReasoningContext.put("secret", "old")

        def next_request():
            return RequestTrace.trace_id(), ReasoningContext.get("secret")

        with ThreadPoolExecutor(max_workers=1) as pool:
            pool.submit(leaky_request).result()
            assert pool.submit(next_request).result() == ("req-old", "old")

    def test_reused_worker_with_clear_is_clean(self):
        """request_scope() leaves nothing behind for the next request on the worker."""
        def tidy_request():
            with request_scope("req-old"):
                ReasoningContext.put("secret", "old")

        def next_request():
            return RequestTrace.trace_id(), ReasoningContext.get("secret")

        with ThreadPoolExecutor(max_workers=1) as pool:
            pool.submit(tidy_request).result()
            assert pool.submit(next_request).result() == (NO_TRACE_ID, None)

    @pytest.mark.asyncio
    async def test_asyncio_tasks_isolated(self):
        """Each asyncio task has its own trace."""
        async def request(trace_id):
            RequestTrace.initialize(trace_id)
            ReasoningContext.put("owner", trace_id)
            await asyncio.sleep(0.01)
            return RequestTrace.trace_id(), ReasoningContext.get("owner")

        results = await asyncio.gather(
            asyncio.create_task(request("task-1")),
            asyncio.create_task(request("task-2")),
        )
        assert results == [("task-1", "task-1"), ("task-2", "task-2")]


class TestInheritedContext:
    """Requests started from a context that already holds entries."""

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_parent_bag(self):
        """Tasks spawned after a parent put() keep their writes to themselves."""
        ReasoningContext.put("app", "startup")

        async def request(owner):
            ReasoningContext.put("owner", owner)
            await asyncio.sleep(0.01)
            return ReasoningContext.get("app"), ReasoningContext.get("owner")

        results = await asyncio.gather(request("task-1"), request("task-2"))

        assert results == [("startup", "task-1"), ("startup", "task-2")]
        assert ReasoningContext.snapshot() == {"app": "startup"}

    @pytest.mark.asyncio
    async def test_task_remove_does_not_reach_parent(self):
        """Removing an inherited key inside a task leaves the parent's entry."""
        ReasoningContext.put("app", "startup")

        async def request():
            return ReasoningContext.remove("app"), ReasoningContext.contains_key("app")

        assert await asyncio.create_task(request()) == ("startup", False)
        assert ReasoningContext.get("app") == "startup"

    @pytest.mark.asyncio
    async def test_task_state_does_not_replace_parent(self):
        """A task installing its own state does not replace the parent's."""
        parent_state = ReasoningState("parent")
        ReasoningContext.set_state(parent_state)

        async def request(query):
            ReasoningContext.set_state(ReasoningState(query))
            await asyncio.sleep(0.01)
            return ReasoningContext.get_state().original_query

        results = await asyncio.gather(request("q1"), request("q2"))

        assert results == ["q1", "q2"]
        assert ReasoningContext.get_state() is parent_state

    def test_copied_context_in_threads(self):
        """Workers running in copies of one populated context stay apart."""
        ReasoningContext.put("app", "startup")
        barrier = threading.Barrier(2)

        def request(owner):
            ReasoningContext.put("owner", owner)
            barrier.wait(timeout=5)
            return ReasoningContext.get("app"), ReasoningContext.get("owner")

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(contextvars.copy_context().run, request, "worker-1")
            second = pool.submit(contextvars.copy_context().run, request, "worker-2")
            assert first.result() == ("startup", "worker-1")
            assert second.result() == ("startup", "worker-2")

        assert ReasoningContext.snapshot() == {"app": "startup"}

    @pytest.mark.asyncio
    async def test_to_thread_workers(self):
        """asyncio.to_thread workers inherit entries but not each other's writes."""
        ReasoningContext.put("app", "startup")
        barrier = threading.Barrier(2)

        def request(owner):
            ReasoningContext.put("owner", owner)
            barrier.wait(timeout=5)
            return ReasoningContext.get("owner")

        results = await asyncio.gather(
            asyncio.to_thread(request, "worker-1"),
            asyncio.to_thread(request, "worker-2"),
        )
        assert results == ["worker-1", "worker-2"]
        assert ReasoningContext.contains_key("owner") is False

    @pytest.mark.asyncio
    async def test_scope_inside_task_starts_empty(self):
        """request_scope() in a task hides the parent's entries."""
        ReasoningContext.put("app", "startup")

        async def request():
            with request_scope("task-req"):
                return ReasoningContext.contains_key("app")

        assert await asyncio.create_task(request()) is False
        assert ReasoningContext.get("app") == "startup"
