# =============================================================================
# Analyzer Agent — Verse-by-Verse Relevance Judgement
# =============================================================================
#
# Decides which retrieved verses actually bear on the user's question and
# whether the loop should search again.
#
# 1. EVALUATE — the LLM grades every verse (high/medium/low or filtered)
#    from its CONTENT. Index scores are deliberately left out of the prompt.
# 2. OVERRIDE — verses fetched by explicit reference ("10.129") are always
#    relevant; a verse the LLM did not mention is filtered.
# 3. DECIDE — fewer than 2 high/medium verses and budget left → search
#    again, with the LLM's suggested term or a deterministic one derived
#    from hymn and deity maps.
#
# DESIGN DECISION: Fail closed. If the LLM call fails or its JSON cannot
# be parsed, every verse is filtered and more search is requested, so an
# unreadable judgement never lets unvetted verses into the evidence.
# =============================================================================

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from rigveda_qa.agents.searcher import VERSE_REFERENCE_RE
from rigveda_qa.agents.types import AnalyzerInput, Passage
from rigveda_qa.config import settings
from rigveda_qa.services.json_parser import extract_json_object
from rigveda_qa.services.llm import LLMProvider

logger = logging.getLogger(__name__)

_MIN_HIGH_QUALITY = 2
_TEXT_PREVIEW_CHARS = 200


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_ANALYZER_SYSTEM = """You are an analyst evaluating RigVeda search results.

Corpus: the RigVeda, 10 Mandalas of hymns in Vedic Sanskrit (Devanagari).
Famous hymns: Nasadiya Sukta (10.129, creation), Purusha Sukta (10.90), \
Gayatri Mantra (3.62.10). References are Mandala.Hymn.Verse.

Evaluate EACH verse on its content alone and be strict:
- high: directly answers the question
- medium: relevant supporting material
- low: only tangentially related
- isFiltered=true: not relevant at all
If the question names a specific hymn, verses from other hymns are filtered, \
and you should request that hymn's reference (e.g. "10.129") as the next search.

Respond with ONLY valid JSON:
{
  "verseEvaluations": [
    {"id": "verse_0_10.129.1", "importance": "high|medium|low", \
"isFiltered": true|false, "reasoning": "..."}
  ],
  "needsMoreSearch": true|false,
  "searchRequest": "Sanskrit term, verse reference, or empty string",
  "reasoning": "Overall assessment"
}"""


# ---------------------------------------------------------------------------
# Deterministic follow-up terms
# ---------------------------------------------------------------------------

HYMN_REFERENCES: dict[str, str] = {
    "nasadiya": "10.129",
    "purusha": "10.90",
    "gayatri": "3.62.10",
    "नासदीय": "10.129",
    "पुरुष": "10.90",
}

CONCEPT_TERMS: dict[str, str] = {
    "fire": "अग्नि",
    "agni": "अग्नि",
    "thunder": "इन्द्र",
    "indra": "इन्द्र",
    "storm": "इन्द्र",
    "moon": "सोम",
    "soma": "सोम",
    "water": "वरुण",
    "varuna": "वरुण",
    "ocean": "वरुण",
    "dawn": "उषस्",
    "ushas": "उषस्",
    "morning": "उषस्",
    "wind": "वायु",
    "vayu": "वायु",
    "sun": "सूर्य",
    "surya": "सूर्य",
    "solar": "सूर्य",
    "order": "ऋत",
    "rita": "ऋत",
    "cosmic": "ऋत",
    "sacrifice": "यज्ञ",
    "yajna": "यज्ञ",
    "ritual": "यज्ञ",
    "duty": "धर्म",
    "dharma": "धर्म",
    "creator": "ब्रह्म",
    "brahma": "ब्रह्म",
    "vishnu": "विष्णु",
    "creation": "सृष्टि",
}

COMMON_TERMS = ["अग्नि", "इन्द्र", "सोम", "वरुण", "उषस्", "वायु", "सूर्य", "ऋत", "यज्ञ", "धर्म"]


def derive_search_term(user_query: str, previous_terms: list[str]) -> str:
    """
    Pick a follow-up search term without an LLM call.

    Order: named hymn → its reference, English concept → Devanagari term,
    then the first common deity term not yet tried. Previously used terms
    are skipped at every step.
    """
    query_lower = user_query.lower()
    used = set(previous_terms)

    for mapping in (HYMN_REFERENCES, CONCEPT_TERMS):
        for keyword, term in mapping.items():
            if keyword in query_lower and term not in used:
                return term

    for term in COMMON_TERMS:
        if term not in used:
            return term
    return COMMON_TERMS[0]


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class AnalyzerAgent:
    def __init__(
        self,
        llm: LLMProvider,
        max_iterations: int | None = None,
    ) -> None:
        self._llm = llm
        self._max_iterations = (
            settings.max_search_iterations if max_iterations is None else max_iterations
        )

    async def analyze(self, request: AnalyzerInput) -> dict[str, Any]:
        """
        Grade one batch of search results.

        Returns a plain mapping with success, relevant_verses,
        filtered_verses, needs_more_search and search_suggestion.
        """
        verses = request.search_results
        ids = [_verse_id(i, v) for i, v in enumerate(verses)]
        by_reference = bool(VERSE_REFERENCE_RE.match(request.search_query.strip()))

        evaluation = await self._evaluate(request, ids)
        judgements = {
            e["id"]: e
            for e in evaluation.get("verseEvaluations") or []
            if isinstance(e, dict) and isinstance(e.get("id"), str)
        }

        relevant: list[Passage] = []
        filtered: list[Passage] = []
        for verse_id, verse in zip(ids, verses):
            if by_reference and verse.context_key:
                graded = dataclasses.replace(
                    verse,
                    is_relevant=True,
                    importance="high",
                    reasoning="Explicitly requested by verse reference",
                )
            elif verse_id not in judgements:
                graded = dataclasses.replace(
                    verse,
                    is_relevant=False,
                    importance="low",
                    reasoning="No evaluation returned for this verse",
                )
            else:
                judgement = judgements[verse_id]
                importance = judgement.get("importance")
                graded = dataclasses.replace(
                    verse,
                    is_relevant=judgement.get("isFiltered") is False,
                    importance=importance if importance in ("high", "medium", "low") else "low",
                    reasoning=str(judgement.get("reasoning") or ""),
                )
            (relevant if graded.is_relevant else filtered).append(graded)

        high_quality = sum(1 for v in relevant if v.importance in ("high", "medium"))
        needs_more = (
            high_quality < _MIN_HIGH_QUALITY
            and request.iteration_count < self._max_iterations
        )

        suggestion = None
        if needs_more:
            suggestion = str(evaluation.get("searchRequest") or "").strip() or (
                derive_search_term(request.user_query, request.previous_search_terms)
            )

        logger.info(
            "Analysis: %d relevant (%d high/medium), %d filtered, more=%s%s",
            len(relevant), high_quality, len(filtered), needs_more,
            f" next='{suggestion}'" if suggestion else "",
        )

        return {
            "success": True,
            "relevant_verses": relevant,
            "filtered_verses": filtered,
            "needs_more_search": needs_more,
            "search_suggestion": suggestion,
        }

    async def _evaluate(self, request: AnalyzerInput, ids: list[str]) -> dict[str, Any]:
        user_message = _format_analysis_request(request, ids, self._max_iterations)
        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": user_message}],
                system=_ANALYZER_SYSTEM,
                temperature=settings.analysis_temperature,
            )
        except Exception as e:
            logger.warning("Analyzer LLM call failed: %s. Filtering all verses.", e)
            return {"verseEvaluations": [], "needsMoreSearch": True, "searchRequest": ""}

        parsed = extract_json_object(response.content, required_keys=("verseEvaluations",))
        if parsed is None:
            logger.warning("Could not parse analyzer response. Filtering all verses.")
            return {"verseEvaluations": [], "needsMoreSearch": True, "searchRequest": ""}
        return parsed


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _verse_id(index: int, verse: Passage) -> str:
    return f"verse_{index}_{verse.context_key or 'unknown'}"


def _format_analysis_request(
    request: AnalyzerInput,
    ids: list[str],
    max_iterations: int,
) -> str:
    """Render the question and verses for grading. Scores are omitted."""
    previous = ", ".join(request.previous_search_terms) or "None (first search)"
    sections = []
    for verse_id, verse in zip(ids, request.search_results):
        text = verse.text
        if len(text) > _TEXT_PREVIEW_CHARS:
            text = text[:_TEXT_PREVIEW_CHARS] + "..."
        sections.append(
            f"[{verse_id}] Verse {verse.context_key or 'Unknown'}\n"
            f"Sanskrit: {text}\n"
            f"Title: {verse.title}"
        )

    return (
        f'User query: "{request.user_query}"\n'
        f'Search query used: "{request.search_query}"\n'
        f"Previous search terms: {previous}\n"
        f"Iteration: {request.iteration_count + 1} of {max_iterations}\n\n"
        f"Verses to evaluate ({len(sections)}):\n\n" + "\n\n".join(sections)
    )
