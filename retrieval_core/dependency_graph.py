"""
Dependency Graph - a lightweight directed graph of named code entities.

The graph is built once by scanning a source tree:
- each source file contributes an entity named after the file (minus extension)
- every `UpperCamelCase...Service|Advisor|Controller` token in the file
  other than the file's own entity becomes an edge `entity -> token`

Edges are idempotent and keep first-seen order. Once frozen the graph is
read-only, so requests can query it concurrently without locking.

Design principles:
- Naming-convention references only, no parsing
- Unreadable files are skipped, a missing root gives an empty graph
- Breadth-first impact radius bounded by depth and by result count
"""

import logging
import os
from collections import deque
from pathlib import Path
from types import MappingProxyType
from typing import Iterable

from retrieval_core.extraction import IdentifierExtractor, reference_extractor
from retrieval_core.request_trace import RequestTrace

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_EXTENSIONS = (".java",)

DEFAULT_EXCLUDE_DIRS = frozenset({
    ".git", "node_modules", "__pycache__", ".venv", "venv", "build", "target",
})


class DependencyGraphBuilder:
    """Mutable staging area for a DependencyGraph. Call freeze() when done."""

    def __init__(
        self,
        extractor: IdentifierExtractor | None = None,
        extensions: Iterable[str] = DEFAULT_SOURCE_EXTENSIONS,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
    ):
        self.extractor = extractor or reference_extractor()
        self.extensions = tuple(extensions)
        self.exclude_dirs = frozenset(exclude_dirs)
        # dicts double as insertion-ordered sets
        self._nodes: dict[str, None] = {}
        self._adjacency: dict[str, dict[str, None]] = {}
        self.files_scanned = 0
        self.files_failed = 0

    def add_node(self, name: str) -> None:
        self._nodes.setdefault(name, None)

    def add_edge(self, source: str, target: str) -> None:
        """Insert `source -> target`. Re-inserting an existing edge is a no-op."""
        self.add_node(source)
        self.add_node(target)
        self._adjacency.setdefault(source, {}).setdefault(target, None)

    def entity_name(self, path: Path) -> str | None:
        """Entity for a source file, or None when the extension is not scanned."""
        name = path.name
        for ext in self.extensions:
            if name.endswith(ext) and len(name) > len(ext):
                return name[: -len(ext)]
        return None

    def scan_text(self, entity: str, content: str) -> None:
        self.add_node(entity)
        for referenced in self.extractor.extract(content):
            if referenced != entity:
                self.add_edge(entity, referenced)

    def scan_file(self, path: Path) -> bool:
        """Scan one file. Returns False when it was skipped."""
        entity = self.entity_name(path)
        if entity is None:
            return False

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.files_failed += 1
            logger.debug(f"Failed to read {path}: {e}")
            return False

        self.files_scanned += 1
        self.scan_text(entity, content)
        return True

    def scan_tree(self, source_root: str | Path) -> "DependencyGraphBuilder":
        root = Path(source_root)
        if not root.exists():
            logger.warning(f"Source root not found at {root} - graph will be empty")
            return self
        if not root.is_dir():
            logger.warning(f"Source root {root} is not a directory - graph will be empty")
            return self

        logger.info(f"Building dependency graph from {root.resolve()}")

        def on_walk_error(error: OSError) -> None:
            logger.warning(f"Failed to walk {error.filename}: {error}")

        for dirpath, dirs, files in os.walk(root, onerror=on_walk_error):
            dirs[:] = sorted(d for d in dirs if d not in self.exclude_dirs)
            for filename in sorted(files):
                self.scan_file(Path(dirpath) / filename)

        return self

    def freeze(self) -> "DependencyGraph":
        return DependencyGraph(self._nodes, self._adjacency)


class DependencyGraph:
    """
    Read-only adjacency over entity names.

    `neighbors` and `impact_radius` never raise for unknown names.
    """

    def __init__(
        self,
        nodes: Iterable[str] = (),
        adjacency: dict[str, Iterable[str]] | None = None,
    ):
        ordered_nodes: dict[str, None] = dict.fromkeys(nodes)
        forward: dict[str, tuple[str, ...]] = {}
        for source, targets in (adjacency or {}).items():
            ordered_nodes.setdefault(source, None)
            unique_targets = tuple(dict.fromkeys(targets))
            for target in unique_targets:
                ordered_nodes.setdefault(target, None)
            if unique_targets:
                forward[source] = unique_targets

        reverse: dict[str, list[str]] = {}
        for source in ordered_nodes:
            for target in forward.get(source, ()):
                reverse.setdefault(target, []).append(source)

        self._nodes = tuple(ordered_nodes)
        self._node_set = frozenset(self._nodes)
        self._forward = MappingProxyType(forward)
        self._reverse = MappingProxyType({k: tuple(v) for k, v in reverse.items()})

    @classmethod
    def build(
        cls,
        source_root: str | Path,
        extractor: IdentifierExtractor | None = None,
        extensions: Iterable[str] = DEFAULT_SOURCE_EXTENSIONS,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
    ) -> "DependencyGraph":
        """Scan `source_root` and return a frozen graph. Never raises for I/O problems."""
        builder = DependencyGraphBuilder(extractor, extensions, exclude_dirs)
        graph = builder.scan_tree(source_root).freeze()
        logger.info(
            f"Dependency graph built: {graph.node_count} nodes, {graph.edge_count} edges "
            f"({builder.files_scanned} files scanned, {builder.files_failed} skipped)"
        )
        return graph

    @classmethod
    def from_config(cls, config) -> "DependencyGraph":
        """Build from a CoreConfig."""
        return cls.build(
            config.resolved_source_root(),
            extensions=config.source_extensions,
            exclude_dirs=config.exclude_dirs,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def contains(self, name: str) -> bool:
        return name in self._node_set

    def nodes(self) -> list[str]:
        return list(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._forward.values())

    def neighbors(self, name: str) -> list[str]:
        """Out-edges of `name` in insertion order; empty for unknown names."""
        return list(self._forward.get(name, ()))

    def reverse_neighbors(self, name: str) -> list[str]:
        """Entities with an edge into `name`."""
        return list(self._reverse.get(name, ()))

    def impact_radius(
        self,
        name: str,
        max_depth: int,
        max_nodes: int,
        include_reverse: bool = False,
    ) -> list[str]:
        """
        Breadth-first neighborhood of `name`, `name` first.

        Nodes further than `max_depth` hops are not expanded and the whole
        traversal stops once `max_nodes` results are collected.
        """
        if not name or max_nodes <= 0 or not self.contains(name):
            return []

        result: list[str] = []
        visited = {name}
        queue = deque([(name, 0)])

        while queue and len(result) < max_nodes:
            current, depth = queue.popleft()
            result.append(current)

            if depth >= max_depth:
                continue

            candidates = self._forward.get(current, ())
            if include_reverse:
                candidates = candidates + self._reverse.get(current, ())
            for neighbor in candidates:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append((neighbor, depth + 1))

        logger.debug(f"[{RequestTrace.trace_id()}] Impact radius for {name}: {result}")
        return result

    def to_dict(self) -> dict:
        return {
            "nodes": list(self._nodes),
            "edges": {source: list(targets) for source, targets in self._forward.items()},
        }
