"""
Plan expansion - applies a SearchPlan to the dependency graph.

Downstream retrieval stages use these two helpers: `strategy_query` for the
text sent to similarity search, and `expand_plan` for the set of related
entities to pull into context.
"""

import logging
from collections import deque
from pathlib import PurePath

from retrieval_core.dependency_graph import DependencyGraph
from retrieval_core.query_planner import SearchPlan, SearchStrategy
from retrieval_core.request_trace import RequestTrace

logger = logging.getLogger(__name__)

STRATEGY_QUERY_SUFFIX: dict[SearchStrategy, str] = {
    SearchStrategy.METHOD_FOCUSED: "implementation method function",
    SearchStrategy.ERROR_TRACE: "error exception handling try catch",
    SearchStrategy.CONFIGURATION_CHAIN: "configuration config setup bean",
}

MAX_FORWARD_PER_NODE = 4
MAX_REVERSE_PER_NODE = 2
DEFAULT_EXPANSION_LIMIT = 20


def strategy_query(plan: SearchPlan) -> str:
    """Similarity-search text for the plan's strategy."""
    suffix = STRATEGY_QUERY_SUFFIX.get(plan.search_strategy)
    if not suffix:
        return plan.original_query
    return f"{plan.original_query} {suffix}".strip()


def expand_plan(
    plan: SearchPlan,
    graph: DependencyGraph,
    max_nodes: int = DEFAULT_EXPANSION_LIMIT,
) -> list[str]:
    """
    Entities reachable from the plan's starting files.

    Seeds come first. Each expanded node adds at most MAX_FORWARD_PER_NODE
    unvisited dependencies and, when the plan includes reverse deps, at
    most MAX_REVERSE_PER_NODE unvisited dependents. Expansion stops after
    `plan.max_hops` levels or once `max_nodes` entities are collected.
    """
    if max_nodes <= 0:
        return []

    seeds = []
    for file_name in plan.starting_files:
        entity = PurePath(file_name).stem
        if entity and entity not in seeds:
            seeds.append(entity)
    seeds = seeds[:max_nodes]

    result = list(seeds)
    visited = set(seeds)
    queue = deque((seed, 0) for seed in seeds)

    while queue and len(result) < max_nodes:
        current, depth = queue.popleft()
        if depth >= plan.max_hops:
            continue

        candidates = _unvisited(graph.neighbors(current), visited, MAX_FORWARD_PER_NODE)
        if plan.include_reverse_deps:
            candidates += _unvisited(graph.reverse_neighbors(current), visited | set(candidates), MAX_REVERSE_PER_NODE)

        for entity in candidates:
            if len(result) >= max_nodes:
                break
            visited.add(entity)
            result.append(entity)
            queue.append((entity, depth + 1))

    logger.debug(
        f"[{RequestTrace.trace_id()}] Plan expansion ({plan.search_strategy.value}): "
        f"{len(seeds)} seeds -> {len(result)} entities"
    )
    return result


def _unvisited(names: list[str], visited: set[str], limit: int) -> list[str]:
    picked = []
    for name in names:
        if name not in visited:
            picked.append(name)
            if len(picked) >= limit:
                break
    return picked
