"""
Identifier extraction and the vocabulary the planner and graph builder use.

Extraction is a strategy object (`IdentifierExtractor`) so callers can swap
in their own patterns; the word lists live in `Vocabulary` as plain data.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass


# =============================================================================
# Vocabulary
# =============================================================================

@dataclass(frozen=True)
class Vocabulary:
    """Word lists driving query classification and entity extraction."""

    # Facet detection (substring tests on the lowercased query)
    how_prefixes: tuple[str, ...] = ("how",)
    how_phrases: tuple[str, ...] = ("how does", "how to")
    what_prefixes: tuple[str, ...] = ("what",)
    what_phrases: tuple[str, ...] = ("what is",)
    where_prefixes: tuple[str, ...] = ("where",)
    where_phrases: tuple[str, ...] = ("where is",)
    explain_terms: tuple[str, ...] = ("explain", "show me")
    architecture_terms: tuple[str, ...] = ("architecture", "structure", "design")
    implementation_terms: tuple[str, ...] = ("implement", "code", "method")
    config_terms: tuple[str, ...] = ("config", "setup", "configure")
    debug_terms: tuple[str, ...] = ("error", "bug", "issue", "problem")

    # Keyword-matched intents
    code_keywords: tuple[str, ...] = (
        "chatservice", "aiproviderconfig", "advisor", "service", "config", "class", "method",
        "how does", "show me", "explain", "architecture", "implementation", "dependency",
        "brain", "code", "function", "java", "spring", "component", "controller", "repository",
    )
    tool_keywords: tuple[str, ...] = (
        "weather", "temperature", "calendar", "meeting", "schedule", "search", "email",
        "time", "date", "forecast", "event", "appointment", "google", "find", "version",
        "latest", "current", "today", "now", "when", "what time",
    )

    # Complexity
    conjunction_markers: tuple[str, ...] = ("and", "also")

    # Entity extraction
    entity_suffixes: tuple[str, ...] = ("Service", "Controller", "Config", "Manager", "Advisor", "Builder")
    method_prefixes: tuple[str, ...] = ("get", "set", "process", "handle", "create", "build", "configure", "manage")
    technical_terms: tuple[str, ...] = (
        "chatservice", "aiproviderconfig", "advisor", "retriever", "planner",
        "vectorstore", "embedding", "dependency", "graph", "context", "budget",
        "token", "chunk", "summary", "brain", "query", "intent", "planning",
    )

    # Keyword extraction
    stop_words: frozenset[str] = frozenset({
        "how", "does", "what", "is", "the", "a", "an", "and", "or", "but",
        "in", "on", "at", "to", "for", "of", "with", "by",
    })

    # Starting-file inference
    starting_file_markers: tuple[str, ...] = ("service", "config", "controller")
    file_hints: tuple[tuple[tuple[str, ...], str], ...] = (
        (("chat",), "ChatService"),
        (("config", "provider"), "AIProviderConfig"),
        (("advisor", "brain"), "QueryPlannerAdvisor"),
    )

    # Dependency graph references
    reference_suffixes: tuple[str, ...] = ("Service", "Advisor", "Controller")


DEFAULT_VOCABULARY = Vocabulary()


# =============================================================================
# Extractors
# =============================================================================

class IdentifierExtractor(ABC):
    """Extracts candidate identifiers from free text."""

    @abstractmethod
    def extract(self, text: str) -> list[str]:
        """Return candidates in order of appearance (duplicates allowed)."""
        pass


class RegexIdentifierExtractor(IdentifierExtractor):
    """Runs each pattern over the text in turn and collects whole matches."""

    def __init__(self, patterns: list[str | re.Pattern]):
        self.patterns = [re.compile(p) if isinstance(p, str) else p for p in patterns]

    def extract(self, text: str) -> list[str]:
        found = []
        for pattern in self.patterns:
            found.extend(m.group(0) for m in pattern.finditer(text or ""))
        return found


class VocabularyExtractor(IdentifierExtractor):
    """Reports which vocabulary terms occur in the lowercased text, in vocabulary order."""

    def __init__(self, terms: tuple[str, ...] | list[str]):
        self.terms = list(terms)

    def extract(self, text: str) -> list[str]:
        lowered = (text or "").lower()
        return [term for term in self.terms if term in lowered]


class CompositeExtractor(IdentifierExtractor):
    """Concatenates the output of several extractors."""

    def __init__(self, extractors: list[IdentifierExtractor]):
        self.extractors = extractors

    def extract(self, text: str) -> list[str]:
        found = []
        for extractor in self.extractors:
            found.extend(extractor.extract(text))
        return found


def _alternation(words: tuple[str, ...]) -> str:
    return "|".join(re.escape(w) for w in words)


def entity_extractor(vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> IdentifierExtractor:
    """
    Query entity extractor: suffixed class names (ChatService), verb-prefixed
    method names (handleRequest), then technical vocabulary terms.
    """
    class_pattern = rf"\b[A-Z][a-zA-Z]*(?:{_alternation(vocabulary.entity_suffixes)})\b"
    method_pattern = rf"\b(?:{_alternation(vocabulary.method_prefixes)})[A-Z][a-zA-Z]*\b"
    return CompositeExtractor([
        RegexIdentifierExtractor([class_pattern, method_pattern]),
        VocabularyExtractor(vocabulary.technical_terms),
    ])


def reference_extractor(vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> IdentifierExtractor:
    """Source reference extractor: UpperCamelCase names ending in a reference suffix."""
    return RegexIdentifierExtractor([
        rf"[A-Z][A-Za-z0-9_]*(?:{_alternation(vocabulary.reference_suffixes)})",
    ])


def unique_in_order(items, limit: int | None = None) -> list[str]:
    """Drop duplicates keeping first occurrence, optionally capped."""
    seen = set()
    result = []
    if limit is not None and limit <= 0:
        return result
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
        if limit is not None and len(result) >= limit:
            break
    return result
