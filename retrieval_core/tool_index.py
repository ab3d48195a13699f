"""
Tool Index - ChromaDB collection of tool descriptions.

Backs ToolCandidateFinder: each tool is stored as one document whose
metadata carries `toolName`, and `search()` returns the store's ranking.
Embeddings come from sentence-transformers unless another embedder is
supplied.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from retrieval_core.tool_finder import TOOL_NAME_KEY, SimilaritySearch, ToolMatch

logger = logging.getLogger(__name__)

# chromadb is optional until an index is actually opened
try:
    import chromadb
    from chromadb.config import Settings
    CHROMADB_AVAILABLE = True
except ImportError:
    CHROMADB_AVAILABLE = False
    logger.warning("chromadb not installed. Install with: pip install chromadb")

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

Embedder = Callable[[list[str]], list[list[float]]]


class ToolIndexUnavailable(RuntimeError):
    """Raised when the vector store backend cannot be used."""
    pass


class SentenceTransformerEmbedder:
    """Lazy sentence-transformers embedder: the model loads on first call."""

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL):
        self.model_name = model_name
        self._model = None

    @property
    def model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers is not installed. "
                    "Run: pip install sentence-transformers"
                )
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def __call__(self, texts: list[str]) -> list[list[float]]:
        return [list(map(float, vector)) for vector in self.model.encode(texts)]


class ChromaToolIndex(SimilaritySearch):
    """Tool descriptions in a ChromaDB collection."""

    def __init__(
        self,
        path: str | Path | None = None,
        collection_name: str = "tools",
        client: Any = None,
        embedder: Embedder | None = None,
    ):
        self.path = Path(path) if path else None
        self.collection_name = collection_name
        self.embedder = embedder or SentenceTransformerEmbedder()

        # created on first use
        self._client: Any = client
        self._collection: Any = None

    @classmethod
    def from_config(cls, config, **kwargs) -> ChromaToolIndex:
        return cls(
            path=config.resolved_tool_index_path(),
            collection_name=config.tool_collection,
            **kwargs,
        )

    def _ensure_collection(self) -> None:
        if self._collection is not None:
            return

        if self._client is None:
            if not CHROMADB_AVAILABLE:
                raise ToolIndexUnavailable("chromadb is not installed")
            if self.path is None:
                self._client = chromadb.EphemeralClient(
                    settings=Settings(anonymized_telemetry=False),
                )
            else:
                self.path.mkdir(parents=True, exist_ok=True)
                self._client = chromadb.PersistentClient(
                    path=str(self.path),
                    settings=Settings(anonymized_telemetry=False, allow_reset=True),
                )

        self._collection = self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"description": "Tool descriptions for candidate ranking"},
        )
        logger.info(f"Tool index ready: collection '{self.collection_name}'")

    @property
    def collection(self) -> Any:
        self._ensure_collection()
        return self._collection

    def register_tools(self, tools: dict[str, str]) -> int:
        """Add or update tool descriptions keyed by tool name. Returns the count written."""
        if not tools:
            return 0

        names = list(tools)
        descriptions = [tools[name] for name in names]
        self.collection.upsert(
            ids=names,
            documents=descriptions,
            metadatas=[{TOOL_NAME_KEY: name} for name in names],
            embeddings=self.embedder(descriptions),
        )
        logger.info(f"Registered {len(names)} tools in '{self.collection_name}'")
        return len(names)

    def count(self) -> int:
        return self.collection.count()

    def search(self, query: str, top_k: int) -> list[ToolMatch]:
        """Best `top_k` tools for `query`; empty on store failure or empty index."""
        if top_k <= 0:
            return []

        try:
            available = self.count()
            if available == 0:
                return []
            results = self.collection.query(
                query_embeddings=self.embedder([query]),
                n_results=min(top_k, available),
            )
        except ToolIndexUnavailable:
            raise
        except Exception as e:
            logger.error(f"Tool search failed: {e}")
            return []

        return self._to_matches(results)

    def _to_matches(self, results: dict) -> list[ToolMatch]:
        matches = []

        if not results or not results.get("ids") or not results["ids"][0]:
            return matches

        ids = results["ids"][0]
        documents = (results.get("documents") or [[]])[0] or []
        metadatas = (results.get("metadatas") or [[]])[0] or []
        distances = (results.get("distances") or [[]])[0] or []

        for i, id_ in enumerate(ids):
            # L2 distance -> score in (0, 1], larger is better
            distance = distances[i] if i < len(distances) else 1.0
            metadata = dict(metadatas[i] or {}) if i < len(metadatas) else {}
            matches.append(ToolMatch(
                tool_name=metadata.get(TOOL_NAME_KEY),
                description=documents[i] if i < len(documents) else "",
                score=1.0 / (1.0 + distance),
                metadata=metadata,
            ))

        return matches
