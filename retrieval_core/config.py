"""
Configuration for the retrieval core.

Read from the `retrieval_core` section of `.code-intel/context.yml`:

    retrieval_core:
      source_root: src/main/java
      source_extensions: [".java"]
      starting_file_extension: .java
      exclude_dirs: [".git", "build"]
      tool_index_path: .code-intel/chroma
      tool_collection: tools

Anything missing falls back to the defaults below. Planner thresholds are
not configurable.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from retrieval_core.dependency_graph import DEFAULT_EXCLUDE_DIRS, DEFAULT_SOURCE_EXTENSIONS

logger = logging.getLogger(__name__)

CONFIG_SECTION = "retrieval_core"


@dataclass
class CoreConfig:
    """Where the source tree and tool index live."""
    repo_path: Path = field(default_factory=lambda: Path("."))
    source_root: str = "src/main/java"
    source_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS))
    starting_file_extension: str = ".java"
    exclude_dirs: list[str] = field(default_factory=lambda: sorted(DEFAULT_EXCLUDE_DIRS))
    tool_index_path: str = ".code-intel/chroma"
    tool_collection: str = "tools"

    def resolved_source_root(self) -> Path:
        return (self.repo_path / self.source_root).resolve()

    def resolved_tool_index_path(self) -> Path:
        return (self.repo_path / self.tool_index_path).resolve()

    @classmethod
    def from_dict(cls, data: dict[str, Any], repo_path: str | Path = ".") -> "CoreConfig":
        config = cls(repo_path=Path(repo_path))
        # null values keep the default
        data = {key: value for key, value in data.items() if value is not None}
        if "source_root" in data:
            config.source_root = str(data["source_root"])
        if "source_extensions" in data:
            extensions = data["source_extensions"]
            # Normalize to list
            if isinstance(extensions, str):
                extensions = [extensions]
            config.source_extensions = list(extensions)
        if "starting_file_extension" in data:
            config.starting_file_extension = str(data["starting_file_extension"])
        if "exclude_dirs" in data:
            config.exclude_dirs = list(data["exclude_dirs"])
        if "tool_index_path" in data:
            config.tool_index_path = str(data["tool_index_path"])
        if "tool_collection" in data:
            config.tool_collection = str(data["tool_collection"])
        return config

    def to_dict(self) -> dict:
        return {
            "source_root": self.source_root,
            "source_extensions": self.source_extensions,
            "starting_file_extension": self.starting_file_extension,
            "exclude_dirs": self.exclude_dirs,
            "tool_index_path": self.tool_index_path,
            "tool_collection": self.tool_collection,
        }


def load_config(repo_path: str | Path = ".") -> CoreConfig:
    """
    Load configuration from context.yml.

    Returns defaults if context.yml doesn't exist, can't be parsed, or has
    no retrieval_core section.
    """
    repo_path = Path(repo_path)
    context_file = repo_path / ".code-intel" / "context.yml"
    if not context_file.exists():
        return CoreConfig(repo_path=repo_path)

    try:
        with open(context_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load {context_file}: {e}")
        return CoreConfig(repo_path=repo_path)

    section = config.get(CONFIG_SECTION) if isinstance(config, dict) else None
    if not isinstance(section, dict):
        return CoreConfig(repo_path=repo_path)

    return CoreConfig.from_dict(section, repo_path=repo_path)
