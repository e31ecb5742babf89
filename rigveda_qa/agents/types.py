# =============================================================================
# Agent Data Structures — Passages, Envelopes, Events, Trace
# =============================================================================
#
# Every agent talks to the orchestrator through one input/output envelope
# pair. Inputs are built by the orchestrator and therefore trusted. Outputs
# come back from LLM-backed code and are NOT trusted: agents return plain
# mappings, and the orchestrator only ever reads the envelopes produced by
# validation.py.
#
# DESIGN DECISION: Dataclasses, not Pydantic models, for internal data.
# Pydantic is reserved for the HTTP boundary (models/). Internally we need
# cheap copies (dataclasses.replace) and a validator that never raises,
# which is easier to guarantee with hand-written coercion.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Passage
# ---------------------------------------------------------------------------


@dataclass
class Passage:
    """
    A single RigVeda verse as it moves through the pipeline.

    `context_key` is the Mandala.Hymn.Verse locator ("10.129.1") and is the
    passage's identity. `score` is whatever the index reported; it is kept
    for display only and no stage filters or ranks on it.
    """

    id: str
    context_key: str
    text: str = ""
    book: str = ""
    title: str = ""
    score: float | None = None
    translation: str | None = None
    is_relevant: bool | None = None
    importance: str | None = None  # "high" | "medium" | "low"
    reasoning: str | None = None

    @property
    def key(self) -> str:
        """Identity key used for deduplication."""
        return self.context_key or self.id


# ---------------------------------------------------------------------------
# Searcher
# ---------------------------------------------------------------------------


@dataclass
class SearcherInput:
    user_query: str
    search_suggestion: str | None = None


@dataclass
class SearcherOutput:
    success: bool
    search_results: list[Passage] = field(default_factory=list)
    search_type: str = "unknown"  # "vector" | "book_context" | ...
    search_term: str = ""
    error: str | None = None


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


@dataclass
class AnalyzerInput:
    user_query: str
    search_query: str
    search_results: list[Passage]
    iteration_count: int
    previous_search_terms: list[str] = field(default_factory=list)


@dataclass
class AnalyzerOutput:
    success: bool
    relevant_verses: list[Passage] = field(default_factory=list)
    filtered_verses: list[Passage] = field(default_factory=list)
    needs_more_search: bool = False
    search_suggestion: str | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Translator
# ---------------------------------------------------------------------------


@dataclass
class TranslatorInput:
    user_query: str
    verses: list[Passage]


@dataclass
class TranslatorOutput:
    success: bool
    translated_verses: list[Passage] = field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


@dataclass
class GeneratorInput:
    user_query: str
    translated_verses: list[Passage]


@dataclass
class GeneratorOutput:
    success: bool
    response: str = ""
    error: str | None = None


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


@dataclass
class ProgressEvent:
    """A stage-boundary notification for the UI layer. Never steers control flow."""

    kind: str
    message: str
    data: dict[str, Any] | None = None


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class TraceStep:
    """One stage invocation and its validated output."""

    tool: str  # "search" | "analyze" | "translate" | "generate"
    result: Any


@dataclass
class QueryResult:
    success: bool
    trace: list[TraceStep]
    final_answer: str
    # Verses handed to the generator; empty when the run aborted early
    verses: list[Passage] = field(default_factory=list)
