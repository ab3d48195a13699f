"""
Pytest configuration and fixtures for the retrieval core tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from retrieval_core.reasoning_context import ReasoningContext
from retrieval_core.request_trace import RequestTrace
from retrieval_core.tool_finder import SimilaritySearch, ToolMatch


class FakeSimilaritySearch(SimilaritySearch):
    """Returns canned hits and records every call."""

    def __init__(self, hits=None):
        self.hits = list(hits or [])
        self.calls = []

    def search(self, query, top_k):
        self.calls.append((query, top_k))
        return self.hits[:top_k]


@pytest.fixture(autouse=True)
def clean_request_context():
    """Every test starts and ends with no trace and an empty reasoning context."""
    ReasoningContext.clear()
    RequestTrace.clear()
    yield
    ReasoningContext.clear()
    RequestTrace.clear()


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def source_tree(tmp_path):
    """A small Java-style source tree with naming-convention references."""
    root = tmp_path / "src" / "main" / "java"
    (root / "service").mkdir(parents=True)
    (root / "manager").mkdir()
    (root / "controller").mkdir()

    (root / "service" / "ChatService.java").write_text(
        "public class ChatService {\n"
        "    private final QueryPlannerAdvisor planner;\n"
        "    private final ToolFinderService toolFinder;\n"
        "    private final QueryPlannerAdvisor again;\n"
        "}\n",
        encoding="utf-8",
    )
    (root / "service" / "ToolFinderService.java").write_text(
        "public class ToolFinderService {\n"
        "    // looked up by ChatService\n"
        "}\n",
        encoding="utf-8",
    )
    (root / "manager" / "QueryPlannerAdvisor.java").write_text(
        "public class QueryPlannerAdvisor {\n"
        "    private final PlanningService planning;\n"
        "}\n",
        encoding="utf-8",
    )
    (root / "controller" / "ChatController.java").write_text(
        "public class ChatController {\n"
        "    private final ChatService chatService;\n"
        "}\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def make_search():
    """Factory for a FakeSimilaritySearch over the given hits."""
    return FakeSimilaritySearch


@pytest.fixture
def fake_search():
    """Similarity search returning three ranked tool hits."""
    return FakeSimilaritySearch([
        ToolMatch(tool_name="get_weather", score=0.9, metadata={"toolName": "get_weather"}),
        ToolMatch(tool_name="search_web", score=0.7, metadata={"toolName": "search_web"}),
        ToolMatch(tool_name="schedule_meeting", score=0.5, metadata={"toolName": "schedule_meeting"}),
        ToolMatch(tool_name="send_email", score=0.3, metadata={"toolName": "send_email"}),
    ])
