"""
Query Planner - turns a free-text question about a codebase into a SearchPlan.

Steps:
1. Facet detection (how/what/where question, architecture, config, debugging...)
2. Intent resolution in fixed priority order with a constant confidence per intent
3. Complexity from token count, conjunctions and intent
4. Entity and keyword extraction
5. Strategy selection and per-strategy retrieval parameters
6. Starting-file inference (no starting files -> similarity_search)
7. Token budget allocation

The numbers below are fixed contracts and are deliberately not read from
configuration.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from retrieval_core.extraction import (
    DEFAULT_VOCABULARY,
    IdentifierExtractor,
    Vocabulary,
    entity_extractor,
    unique_in_order,
)
from retrieval_core.request_trace import RequestTrace

logger = logging.getLogger(__name__)


class Intent(Enum):
    """What the query is asking for, in resolution priority order."""
    DEBUG = "DEBUG"
    CONFIG = "CONFIG"
    ARCHITECTURE = "ARCHITECTURE"
    IMPLEMENTATION = "IMPLEMENTATION"
    CODE = "CODE"
    TOOLS = "TOOLS"
    GENERAL = "GENERAL"


class Complexity(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SearchStrategy(Enum):
    """Named retrieval policy."""
    ERROR_TRACE = "error_trace"
    DEPENDENCY_GRAPH = "dependency_graph"
    METHOD_FOCUSED = "method_focused"
    CONFIGURATION_CHAIN = "configuration_chain"
    ENTITY_CENTERED = "entity_centered"
    SIMILARITY_SEARCH = "similarity_search"


@dataclass(frozen=True)
class StrategyParameters:
    """Base retrieval parameters of a strategy before complexity adjustment."""
    top_k: int
    max_hops: int
    include_reverse_deps: bool


INTENT_CONFIDENCE: dict[Intent, float] = {
    Intent.DEBUG: 0.9,
    Intent.CONFIG: 0.85,
    Intent.ARCHITECTURE: 0.9,
    Intent.IMPLEMENTATION: 0.8,
    Intent.CODE: 0.75,
    Intent.TOOLS: 0.8,
    Intent.GENERAL: 0.6,
}

INTENT_STRATEGY: dict[Intent, SearchStrategy] = {
    Intent.DEBUG: SearchStrategy.ERROR_TRACE,
    Intent.ARCHITECTURE: SearchStrategy.DEPENDENCY_GRAPH,
    Intent.IMPLEMENTATION: SearchStrategy.METHOD_FOCUSED,
    Intent.CONFIG: SearchStrategy.CONFIGURATION_CHAIN,
}

STRATEGY_PARAMETERS: dict[SearchStrategy, StrategyParameters] = {
    SearchStrategy.DEPENDENCY_GRAPH: StrategyParameters(top_k=5, max_hops=3, include_reverse_deps=True),
    SearchStrategy.ENTITY_CENTERED: StrategyParameters(top_k=3, max_hops=2, include_reverse_deps=False),
    SearchStrategy.METHOD_FOCUSED: StrategyParameters(top_k=4, max_hops=1, include_reverse_deps=False),
    SearchStrategy.ERROR_TRACE: StrategyParameters(top_k=6, max_hops=2, include_reverse_deps=True),
    SearchStrategy.CONFIGURATION_CHAIN: StrategyParameters(top_k=4, max_hops=2, include_reverse_deps=False),
    SearchStrategy.SIMILARITY_SEARCH: StrategyParameters(top_k=3, max_hops=1, include_reverse_deps=False),
}

STRATEGY_INSIGHTS: dict[SearchStrategy, str] = {
    SearchStrategy.DEPENDENCY_GRAPH: "Wide exploration of architectural relationships",
    SearchStrategy.ENTITY_CENTERED: "Focused search around specific entities",
    SearchStrategy.METHOD_FOCUSED: "Deep dive into implementation details",
    SearchStrategy.ERROR_TRACE: "Following error paths and exception handling",
    SearchStrategy.CONFIGURATION_CHAIN: "Tracing configuration dependencies",
    SearchStrategy.SIMILARITY_SEARCH: "Broad similarity-based exploration",
}

MAX_HOPS_LIMIT = 3
MIN_TOP_K = 2
HIGH_COMPLEXITY_TOP_K_BONUS = 2

HIGH_COMPLEXITY_TOKEN_COUNT = 20
MEDIUM_COMPLEXITY_TOKEN_COUNT = 8

MAX_ENTITIES = 8
MAX_KEYWORDS = 6
MIN_KEYWORD_LENGTH = 3

BASE_TOKEN_BUDGET = 7000
COMPLEXITY_TOKEN_BUDGET: dict[Complexity, int] = {
    Complexity.HIGH: 6000,
    Complexity.LOW: 5000,
}
STRATEGY_TOKEN_CEILING: dict[SearchStrategy, int] = {
    SearchStrategy.DEPENDENCY_GRAPH: 6500,
    SearchStrategy.METHOD_FOCUSED: 4000,
    SearchStrategy.ERROR_TRACE: 5500,
}

HIGH_CONFIDENCE_THRESHOLD = 0.8

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


@dataclass
class QueryAnalysis:
    """Facets detected in a query and the intent/complexity derived from them."""
    is_how_question: bool = False
    is_what_question: bool = False
    is_where_question: bool = False
    is_explain_request: bool = False
    is_architecture_query: bool = False
    is_implementation_query: bool = False
    is_configuration_query: bool = False
    is_debugging_query: bool = False
    intent: Intent = Intent.GENERAL
    confidence: float = INTENT_CONFIDENCE[Intent.GENERAL]
    complexity: Complexity = Complexity.LOW


@dataclass(frozen=True)
class SearchPlan:
    """Bounded retrieval plan for one query. Immutable once built."""
    original_query: str
    intent: Intent
    confidence: float
    complexity: Complexity
    search_strategy: SearchStrategy
    target_entities: tuple[str, ...] = field(default_factory=tuple)
    search_keywords: tuple[str, ...] = field(default_factory=tuple)
    starting_files: tuple[str, ...] = field(default_factory=tuple)
    top_k: int = 3
    max_hops: int = 1
    include_reverse_deps: bool = False
    token_budget: int = BASE_TOKEN_BUDGET

    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE_THRESHOLD

    def is_complex_query(self) -> bool:
        return self.complexity == Complexity.HIGH

    def has_specific_entities(self) -> bool:
        return bool(self.target_entities)

    def requires_special_handling(self) -> bool:
        """Complex, wide or uncertain plans that downstream stages should treat with care."""
        return (
            self.is_complex_query()
            or self.search_strategy in (SearchStrategy.DEPENDENCY_GRAPH, SearchStrategy.ERROR_TRACE)
            or not self.is_high_confidence()
        )

    def strategy_insight(self) -> str:
        return STRATEGY_INSIGHTS[self.search_strategy]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "original_query": self.original_query,
            "intent": self.intent.value,
            "confidence": self.confidence,
            "complexity": self.complexity.value,
            "search_strategy": self.search_strategy.value,
            "target_entities": list(self.target_entities),
            "search_keywords": list(self.search_keywords),
            "starting_files": list(self.starting_files),
            "top_k": self.top_k,
            "max_hops": self.max_hops,
            "include_reverse_deps": self.include_reverse_deps,
            "token_budget": self.token_budget,
        }


class QueryPlanner:
    """
    Builds a SearchPlan from a raw query.

    Stateless after construction and safe to share between requests.
    `source_extension` is appended to inferred starting-file names.
    """

    def __init__(
        self,
        source_extension: str = ".java",
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
        extractor: IdentifierExtractor | None = None,
    ):
        self.source_extension = source_extension
        self.vocabulary = vocabulary
        self.extractor = extractor or entity_extractor(vocabulary)

    @classmethod
    def from_config(cls, config) -> "QueryPlanner":
        return cls(source_extension=config.starting_file_extension)

    def create_search_plan(self, query: str) -> SearchPlan:
        """Plan retrieval for `query`. Never raises on degenerate input."""
        query = query or ""
        trace_id = RequestTrace.trace_id()
        logger.info(f"[{trace_id}] Creating search plan for: {query!r}")

        analysis = self.analyze_query(query)
        entities = self.extract_entities(query)
        keywords = self.extract_keywords(query)

        strategy = self.select_strategy(analysis.intent, entities)
        params = self.configure_parameters(strategy, analysis.complexity)

        starting_files = self.infer_starting_files(query, entities)
        if not starting_files:
            strategy = SearchStrategy.SIMILARITY_SEARCH

        plan = SearchPlan(
            original_query=query,
            intent=analysis.intent,
            confidence=analysis.confidence,
            complexity=analysis.complexity,
            search_strategy=strategy,
            target_entities=tuple(entities),
            search_keywords=tuple(keywords),
            starting_files=tuple(starting_files),
            top_k=params.top_k,
            max_hops=params.max_hops,
            include_reverse_deps=params.include_reverse_deps,
            token_budget=self.allocate_token_budget(strategy, analysis.complexity),
        )

        logger.info(
            f"[{trace_id}] Search plan: intent={plan.intent.value} "
            f"(confidence: {plan.confidence:.2f}) strategy={plan.search_strategy.value} "
            f"complexity={plan.complexity.value}"
        )
        logger.info(
            f"[{trace_id}]   starting_files={list(plan.starting_files)} top_k={plan.top_k} "
            f"max_hops={plan.max_hops} reverse_deps={plan.include_reverse_deps} "
            f"token_budget={plan.token_budget}"
        )
        logger.debug(f"[{trace_id}]   entities={list(plan.target_entities)} keywords={list(plan.search_keywords)}")
        return plan

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def analyze_query(self, query: str) -> QueryAnalysis:
        v = self.vocabulary
        lowered = (query or "").lower()

        analysis = QueryAnalysis(
            is_how_question=lowered.startswith(v.how_prefixes) or _contains_any(lowered, v.how_phrases),
            is_what_question=lowered.startswith(v.what_prefixes) or _contains_any(lowered, v.what_phrases),
            is_where_question=lowered.startswith(v.where_prefixes) or _contains_any(lowered, v.where_phrases),
            is_explain_request=_contains_any(lowered, v.explain_terms),
            is_architecture_query=_contains_any(lowered, v.architecture_terms),
            is_implementation_query=_contains_any(lowered, v.implementation_terms),
            is_configuration_query=_contains_any(lowered, v.config_terms),
            is_debugging_query=_contains_any(lowered, v.debug_terms),
        )

        analysis.intent = self._resolve_intent(analysis, lowered)
        analysis.confidence = INTENT_CONFIDENCE[analysis.intent]
        analysis.complexity = self._assess_complexity(query or "", lowered, analysis)
        return analysis

    def _resolve_intent(self, analysis: QueryAnalysis, lowered: str) -> Intent:
        if analysis.is_debugging_query:
            return Intent.DEBUG
        if analysis.is_configuration_query:
            return Intent.CONFIG
        if analysis.is_architecture_query:
            return Intent.ARCHITECTURE
        if analysis.is_implementation_query:
            return Intent.IMPLEMENTATION
        if _contains_any(lowered, self.vocabulary.code_keywords):
            return Intent.CODE
        if _contains_any(lowered, self.vocabulary.tool_keywords):
            return Intent.TOOLS
        return Intent.GENERAL

    def _assess_complexity(self, query: str, lowered: str, analysis: QueryAnalysis) -> Complexity:
        token_count = len(query.split())
        has_conjunction = any(f" {m} " in lowered for m in self.vocabulary.conjunction_markers)

        if token_count > HIGH_COMPLEXITY_TOKEN_COUNT or has_conjunction:
            return Complexity.HIGH
        if token_count > MEDIUM_COMPLEXITY_TOKEN_COUNT or analysis.is_architecture_query:
            return Complexity.MEDIUM
        return Complexity.LOW

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    def extract_entities(self, query: str) -> list[str]:
        return unique_in_order(self.extractor.extract(query or ""), limit=MAX_ENTITIES)

    def extract_keywords(self, query: str) -> list[str]:
        cleaned = (_NON_ALPHANUMERIC.sub("", word.lower()) for word in (query or "").split())
        candidates = (
            word for word in cleaned
            if len(word) >= MIN_KEYWORD_LENGTH and word not in self.vocabulary.stop_words
        )
        return unique_in_order(candidates, limit=MAX_KEYWORDS)

    # -------------------------------------------------------------------------
    # Strategy and parameters
    # -------------------------------------------------------------------------

    def select_strategy(self, intent: Intent, entities: list[str]) -> SearchStrategy:
        if intent in INTENT_STRATEGY:
            return INTENT_STRATEGY[intent]
        if entities:
            return SearchStrategy.ENTITY_CENTERED
        return SearchStrategy.SIMILARITY_SEARCH

    def configure_parameters(self, strategy: SearchStrategy, complexity: Complexity) -> StrategyParameters:
        base = STRATEGY_PARAMETERS[strategy]
        top_k, max_hops = base.top_k, base.max_hops

        if complexity == Complexity.HIGH:
            top_k += HIGH_COMPLEXITY_TOP_K_BONUS
            max_hops = min(max_hops + 1, MAX_HOPS_LIMIT)
        elif complexity == Complexity.LOW:
            top_k = max(top_k - 1, MIN_TOP_K)

        return StrategyParameters(top_k=top_k, max_hops=max_hops, include_reverse_deps=base.include_reverse_deps)

    def infer_starting_files(self, query: str, entities: list[str]) -> list[str]:
        v = self.vocabulary
        files = [
            f"{entity}{self.source_extension}"
            for entity in entities
            if _contains_any(entity.lower(), v.starting_file_markers)
        ]

        if not files:
            lowered = (query or "").lower()
            files = [
                f"{name}{self.source_extension}"
                for hints, name in v.file_hints
                if _contains_any(lowered, hints)
            ]

        return unique_in_order(files)

    def allocate_token_budget(self, strategy: SearchStrategy, complexity: Complexity) -> int:
        budget = COMPLEXITY_TOKEN_BUDGET.get(complexity, BASE_TOKEN_BUDGET)
        ceiling = STRATEGY_TOKEN_CEILING.get(strategy)
        if ceiling is not None:
            budget = min(budget, ceiling)
        return budget


def _contains_any(text: str, terms) -> bool:
    return any(term in text for term in terms)
