"""
ReasoningState - the per-request record shared by all pipeline stages.

Flow:
1. ToolCandidateFinder creates the state and fills suggested_tools
2. A downstream stage approves the tools it will actually run
3. Tool execution checks is_tool_approved() before calling a tool
4. Any stage may read or add metadata, flags and votes
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

VOTE_CATEGORY_TOOL_REQUIRED = "TOOL_REQUIRED"


@dataclass
class BrainVote:
    """A stage's vote on whether tools are needed for the request."""
    brain_name: str
    score: float  # 0.0-1.0
    reasoning: str
    category: str = VOTE_CATEGORY_TOOL_REQUIRED
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"vote score must be within [0, 1], got {self.score}")

    @property
    def percentage(self) -> float:
        return self.score * 100

    @property
    def strength(self) -> str:
        if self.score < 0.33:
            return "WEAK"
        elif self.score < 0.67:
            return "MEDIUM"
        else:
            return "STRONG"

    def to_dict(self) -> dict:
        return {
            "brain_name": self.brain_name,
            "score": self.score,
            "strength": self.strength,
            "reasoning": self.reasoning,
            "category": self.category,
        }

    def __str__(self) -> str:
        return f"{self.brain_name}: {self.percentage:.0f}% ({self.strength}) - {self.reasoning}"


class ReasoningState:
    """
    Mutable per-request record.

    `original_query` is fixed at creation. `suggested_tools` is written by
    ToolCandidateFinder; `approved_tools` grows as later stages approve
    tools. Created once per request and dropped with ReasoningContext.clear().
    """

    def __init__(self, original_query: str):
        self._original_query = original_query or ""
        self.trace_id = str(uuid.uuid4())
        self.created_at = time.time()

        self.suggested_tools: list[str] = []
        self.approved_tools: list[str] = []

        self.intent: str | None = None
        self.strategy: str | None = None
        self.confidence: float = 0.0

        self.metadata: dict[str, Any] = {}
        self.votes: list[BrainVote] = []
        self._flags: dict[str, bool] = {}

    @property
    def original_query(self) -> str:
        return self._original_query

    # -------------------------------------------------------------------------
    # Tool decisions
    # -------------------------------------------------------------------------

    def approve_tools(self, tools: list[str]) -> None:
        """Append tools to the approved list, skipping ones already approved."""
        for tool in tools:
            if tool not in self.approved_tools:
                self.approved_tools.append(tool)

    def is_tool_approved(self, tool_name: str) -> bool:
        return tool_name in self.approved_tools

    def has_approved_tools(self) -> bool:
        return bool(self.approved_tools)

    # -------------------------------------------------------------------------
    # Flags and metadata
    # -------------------------------------------------------------------------

    def set_flag(self, name: str, value: bool = True) -> None:
        self._flags[name] = value

    def get_flag(self, name: str, default: bool = False) -> bool:
        return self._flags.get(name, default)

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def get_metadata(self, key: str) -> Any:
        return self.metadata.get(key)

    # -------------------------------------------------------------------------
    # Voting
    # -------------------------------------------------------------------------

    def add_vote(self, vote: BrainVote) -> None:
        self.votes.append(vote)

    @property
    def vote_count(self) -> int:
        return len(self.votes)

    def average_vote_score(self) -> float:
        if not self.votes:
            return 0.0
        return sum(v.score for v in self.votes) / len(self.votes)

    def to_dict(self) -> dict:
        return {
            "trace_id": self.trace_id,
            "original_query": self._original_query,
            "suggested_tools": list(self.suggested_tools),
            "approved_tools": list(self.approved_tools),
            "intent": self.intent,
            "strategy": self.strategy,
            "confidence": self.confidence,
            "flags": dict(self._flags),
            "metadata": dict(self.metadata),
            "votes": [v.to_dict() for v in self.votes],
        }

    def __str__(self) -> str:
        query = self._original_query
        if len(query) > 50:
            query = query[:50] + "..."
        return (
            f"ReasoningState(trace_id={self.trace_id!r}, query={query!r}, "
            f"suggested={self.suggested_tools}, approved={self.approved_tools}, "
            f"intent={self.intent!r}, confidence={self.confidence:.2f}, votes={self.vote_count})"
        )
