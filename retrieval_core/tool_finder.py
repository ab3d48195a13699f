"""
Tool Candidate Finder - ranks tool descriptions against the user prompt and
hands the result to the rest of the pipeline through ReasoningContext.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from retrieval_core.reasoning_context import ReasoningContext
from retrieval_core.reasoning_state import ReasoningState
from retrieval_core.request_trace import RequestTrace

logger = logging.getLogger(__name__)

TOOL_NAME_KEY = "toolName"
TOOL_CANDIDATE_LIMIT = 3
TOOL_MATCHES_CONTEXT_KEY = "tool_matches"


@dataclass
class ToolMatch:
    """One similarity-search hit for a tool description."""
    tool_name: str | None
    description: str = ""
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "description": self.description,
            "score": self.score,
            "metadata": self.metadata,
        }


class SimilaritySearch(ABC):
    """External similarity search over tool descriptions."""

    @abstractmethod
    def search(self, query: str, top_k: int) -> list[ToolMatch]:
        """Best matches first. Each match's metadata carries `toolName`."""
        pass


def _metadata_of(hit: Any) -> dict[str, Any]:
    if isinstance(hit, dict):
        return hit.get("metadata") or {}
    return getattr(hit, "metadata", None) or {}


class ToolCandidateFinder:
    """
    Finds candidate tools for a prompt.

    Each call creates a fresh ReasoningState for the current request,
    replacing any state already installed in ReasoningContext.
    """

    def __init__(self, search: SimilaritySearch, top_k: int = TOOL_CANDIDATE_LIMIT):
        self.search = search
        self.top_k = top_k

    def find_tools_for(self, prompt: str) -> list[str]:
        prompt = prompt or ""
        trace_id = RequestTrace.trace_id()

        hits = self.search.search(prompt, self.top_k) or []

        tool_names = []
        for hit in hits:
            name = _metadata_of(hit).get(TOOL_NAME_KEY)
            if name is None:
                logger.debug(f"[{trace_id}] Skipping match without {TOOL_NAME_KEY}: {hit}")
                continue
            tool_names.append(name)

        logger.info(f"[{trace_id}] Found {len(tool_names)} tools for prompt")
        logger.info(f"[{trace_id}]   Tools: {tool_names}")

        state = ReasoningState(prompt)
        state.suggested_tools = list(tool_names)
        ReasoningContext.set_state(state)
        ReasoningContext.put(
            TOOL_MATCHES_CONTEXT_KEY,
            [hit.to_dict() if isinstance(hit, ToolMatch) else hit for hit in hits],
        )

        logger.debug(f"[{trace_id}]   ReasoningState stored in ReasoningContext: {state}")
        return tool_names
