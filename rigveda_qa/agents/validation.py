# =============================================================================
# Output Validators — The Single Choke Point for Agent Output
# =============================================================================
#
# Agents are LLM-backed and hand back plain mappings whose shape cannot be
# trusted. Before the orchestrator reads any field, the raw value passes
# through one of the four validate_* functions below, which:
#
#   - accept ANY value (mapping, dataclass instance, None, a string, ...)
#   - never raise
#   - default mistyped/absent booleans to False, lists to [], strings to ""
#   - coerce every list entry to a Passage, dropping entries that have no
#     identity at all
#   - log each repair at WARNING level
#
# A non-mapping value yields an envelope with success=False, so the
# orchestrator treats it exactly like an agent-reported failure.
# =============================================================================

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Mapping
from typing import Any

from rigveda_qa.agents.types import (
    AnalyzerOutput,
    GeneratorOutput,
    Passage,
    SearcherOutput,
    TranslatorOutput,
)

logger = logging.getLogger(__name__)

_IMPORTANCE_LEVELS = {"high", "medium", "low"}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_searcher_output(output: Any) -> SearcherOutput:
    """Coerce a raw searcher result into a well-formed SearcherOutput."""
    data = _as_mapping(output)
    if data is None:
        logger.warning(
            "Invalid searcher output: expected a mapping, got %s",
            type(output).__name__,
        )
        return SearcherOutput(
            success=False,
            search_type="error",
            error="Invalid output structure from searcher",
        )

    return SearcherOutput(
        success=_bool_field(data, "success", "searcher"),
        search_results=_passage_list(data, "search_results", "searcher"),
        search_type=_str_field(data, "search_type", "searcher", default="unknown"),
        search_term=_str_field(data, "search_term", "searcher"),
        error=_optional_str(data.get("error")),
    )


def validate_analyzer_output(output: Any) -> AnalyzerOutput:
    """Coerce a raw analyzer result into a well-formed AnalyzerOutput."""
    data = _as_mapping(output)
    if data is None:
        logger.warning(
            "Invalid analyzer output: expected a mapping, got %s",
            type(output).__name__,
        )
        return AnalyzerOutput(
            success=False,
            error="Invalid output structure from analyzer",
        )

    return AnalyzerOutput(
        success=_bool_field(data, "success", "analyzer"),
        relevant_verses=_passage_list(data, "relevant_verses", "analyzer"),
        filtered_verses=_passage_list(data, "filtered_verses", "analyzer"),
        needs_more_search=_bool_field(data, "needs_more_search", "analyzer"),
        search_suggestion=_optional_str(data.get("search_suggestion")),
        error=_optional_str(data.get("error")),
    )


def validate_translator_output(output: Any) -> TranslatorOutput:
    """Coerce a raw translator result into a well-formed TranslatorOutput."""
    data = _as_mapping(output)
    if data is None:
        logger.warning(
            "Invalid translator output: expected a mapping, got %s",
            type(output).__name__,
        )
        return TranslatorOutput(
            success=False,
            error="Invalid output structure from translator",
        )

    return TranslatorOutput(
        success=_bool_field(data, "success", "translator"),
        translated_verses=_passage_list(data, "translated_verses", "translator"),
        error=_optional_str(data.get("error")),
    )


def validate_generator_output(output: Any) -> GeneratorOutput:
    """Coerce a raw single-shot generator result into a GeneratorOutput."""
    data = _as_mapping(output)
    if data is None:
        logger.warning(
            "Invalid generator output: expected a mapping, got %s",
            type(output).__name__,
        )
        return GeneratorOutput(
            success=False,
            error="Invalid output structure from generator",
        )

    return GeneratorOutput(
        success=_bool_field(data, "success", "generator"),
        response=_str_field(data, "response", "generator"),
        error=_optional_str(data.get("error")),
    )


def coerce_passage(value: Any) -> Passage | None:
    """
    Build a Passage from a Passage, a dataclass, or a mapping.

    Accepts the corpus spelling ("bookContext", "content") as well as the
    Python field names. Returns None when the value has neither an id nor
    a context key, since such a passage cannot be deduplicated.

    Passage instances are rebuilt field by field too: an agent can put
    anything into a dataclass field.
    """
    data = _as_mapping(value)
    if data is None:
        return None

    passage_id = _identifier(data.get("id"))
    context_key = _identifier(
        _first_present(data, "context_key", "bookContext", "book_context")
    )
    if not passage_id and not context_key:
        return None

    text = _first_present(data, "text", "content")
    score = data.get("score", data.get("relevance"))
    importance = data.get("importance")
    if not isinstance(importance, str) or importance not in _IMPORTANCE_LEVELS:
        importance = None

    return Passage(
        id=passage_id or context_key,
        context_key=context_key,
        text=text if isinstance(text, str) else "",
        book=_str_or_empty(data.get("book")),
        title=_str_or_empty(data.get("title")),
        score=_optional_float(score),
        translation=_optional_str(data.get("translation")),
        is_relevant=_optional_bool(data.get("is_relevant")),
        importance=importance,
        reasoning=_optional_str(data.get("reasoning")),
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    """Return a read-only view of a mapping or dataclass instance, else None."""
    if isinstance(value, Mapping):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        # Shallow: list entries are coerced one by one in _passage_list
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    return None


def _bool_field(data: Mapping[str, Any], name: str, agent: str) -> bool:
    value = data.get(name)
    if isinstance(value, bool):
        return value
    logger.warning(
        "%s output: missing or invalid %r (got %s), defaulting to False",
        agent, name, type(value).__name__,
    )
    return False


def _str_field(
    data: Mapping[str, Any], name: str, agent: str, default: str = "",
) -> str:
    value = data.get(name)
    if isinstance(value, str):
        return value
    logger.warning(
        "%s output: missing or invalid %r (got %s), defaulting to %r",
        agent, name, type(value).__name__, default,
    )
    return default


def _passage_list(data: Mapping[str, Any], name: str, agent: str) -> list[Passage]:
    value = data.get(name)
    if not isinstance(value, (list, tuple)):
        logger.warning(
            "%s output: %r is not a list (got %s), defaulting to []",
            agent, name, type(value).__name__,
        )
        return []

    passages = [p for p in (coerce_passage(item) for item in value) if p is not None]
    dropped = len(value) - len(passages)
    if dropped:
        logger.warning(
            "%s output: dropped %d malformed entries from %r",
            agent, dropped, name,
        )
    return passages


def _first_present(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return None


def _identifier(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return str(value)
        except ValueError:
            # Exceeds the int-to-str digit limit
            return ""
    return ""


def _optional_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _str_or_empty(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None
