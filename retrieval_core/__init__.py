"""Query understanding and retrieval planning for the code-assistant pipeline."""

from .config import CoreConfig, load_config
from .dependency_graph import DependencyGraph, DependencyGraphBuilder
from .plan_expansion import expand_plan, strategy_query
from .query_planner import Complexity, Intent, QueryPlanner, SearchPlan, SearchStrategy
from .reasoning_context import ReasoningContext, request_scope
from .reasoning_state import BrainVote, ReasoningState
from .request_trace import RequestTrace, TraceIdFilter
from .tool_finder import SimilaritySearch, ToolCandidateFinder, ToolMatch
from .tool_index import ChromaToolIndex, SentenceTransformerEmbedder, ToolIndexUnavailable

__all__ = [
    "BrainVote",
    "ChromaToolIndex",
    "Complexity",
    "CoreConfig",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "Intent",
    "QueryPlanner",
    "ReasoningContext",
    "ReasoningState",
    "RequestTrace",
    "SearchPlan",
    "SearchStrategy",
    "SentenceTransformerEmbedder",
    "SimilaritySearch",
    "ToolCandidateFinder",
    "ToolIndexUnavailable",
    "ToolMatch",
    "TraceIdFilter",
    "expand_plan",
    "load_config",
    "request_scope",
    "strategy_query",
]
