# =============================================================================
# Searcher Agent — Sanskrit Search Terms + Verse Retrieval
# =============================================================================
#
# The corpus is Vedic Sanskrit in Devanagari, but users ask in English.
# The searcher bridges that gap:
#
# 1. VERSE REFERENCE — "10.129" or "10.129.3" is looked up directly by
#    Mandala.Hymn(.Verse), no LLM call.
# 2. SEARCH TERM — otherwise the LLM proposes ONE 2-4 word Devanagari
#    phrase (up to 3 attempts, rising temperature).
# 3. FALLBACKS — no Devanagari in the reply → ask the LLM to translate the
#    request into Sanskrit keywords; if that fails too, search with the
#    raw request.
# 4. RETRIEVE — index.search(term, top_k).
#
# DESIGN DECISION: Index errors are NOT caught here. The orchestrator's
# call wrapper turns any exception into success=False, so a broken index
# shows up as an unproductive iteration instead of fabricated results.
# =============================================================================

from __future__ import annotations

import logging
import re
from typing import Any

from rigveda_qa.agents.types import SearcherInput
from rigveda_qa.config import settings
from rigveda_qa.services.llm import LLMProvider
from rigveda_qa.services.verse_index import VerseIndex

logger = logging.getLogger(__name__)

VERSE_REFERENCE_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")
_DEVANAGARI_RE = re.compile(r"[\u0900-\u097F]")
_MALFORMED_DEVANAGARI_RE = re.compile(r"[\u0900-\u097F]+\?+|\?+[\u0900-\u097F]+")
_WHITESPACE_RE = re.compile(r"\s+")

_MAX_TERM_ATTEMPTS = 3


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_SEARCH_TERM_SYSTEM = """You are a RigVeda scholar. Given a search request, \
produce ONE focused search phrase in Sanskrit (Devanagari script) that would \
find relevant verses in the RigVeda corpus.

Corpus knowledge:
- 10 Mandalas of hymns to deities such as Agni (अग्नि), Indra (इन्द्र), \
Soma (सोम), Varuna (वरुण), Ushas (उषस्)
- Key concepts: Rita (ऋत), Yajna (यज्ञ), Brahman (ब्रह्मन्)
- Famous hymns: Nasadiya Sukta (नासदीय सूक्त, 10.129), \
Purusha Sukta (पुरुष सूक्त, 10.90)

Guidelines:
- Use 2-4 words that would appear together in a verse, \
e.g. "इन्द्र वृत्र युद्ध" or "अग्नि होत्र देव"
- Search is by embedding similarity, so combine deity, action and context
- Return ONLY the Devanagari phrase. No transliteration, no explanation."""

_TRANSLATE_SYSTEM = """You are a RigVeda scholar. Translate the user's query \
into 2-5 Sanskrit keywords in Devanagari script that would actually appear \
in RigVeda verses. Return ONLY the keywords separated by spaces."""


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class SearcherAgent:
    """Turns a query (or an analyzer suggestion) into verses from the index."""

    def __init__(
        self,
        llm: LLMProvider,
        index: VerseIndex,
        top_k: int | None = None,
    ) -> None:
        self._llm = llm
        self._index = index
        self._top_k = settings.search_top_k if top_k is None else top_k

    async def initialize(self) -> None:
        await self._index.initialize()

    async def search(self, request: SearcherInput) -> dict[str, Any]:
        """
        Run one search round.

        Returns a plain mapping with success, search_results, search_type
        and search_term. Raises whatever the index raises.
        """
        query = (request.search_suggestion or request.user_query).strip()

        if VERSE_REFERENCE_RE.match(query):
            logger.info("Book-context lookup: %s", query)
            results = await self._index.lookup(query, limit=self._top_k)
            return {
                "success": True,
                "search_results": results,
                "search_type": "book_context",
                "search_term": query,
            }

        term = await self._generate_search_term(query)
        logger.info("Vector search: term='%s' (request='%s')", term, query[:80])
        results = await self._index.search(term, top_k=self._top_k)

        logger.info("Search returned %d verses", len(results))
        return {
            "success": True,
            "search_results": results,
            "search_type": "vector",
            "search_term": term,
        }

    # -----------------------------------------------------------------------
    # Search-term generation
    # -----------------------------------------------------------------------

    async def _generate_search_term(self, query: str) -> str:
        for attempt in range(_MAX_TERM_ATTEMPTS):
            try:
                response = await self._llm.complete(
                    messages=[{
                        "role": "user",
                        "content": f"Search request: {query}\n\nSanskrit search phrase:",
                    }],
                    system=_SEARCH_TERM_SYSTEM,
                    temperature=settings.search_term_temperature + attempt * 0.2,
                    max_tokens=64,
                )
            except Exception as e:
                logger.warning(
                    "Search-term generation failed (attempt %d/%d): %s",
                    attempt + 1, _MAX_TERM_ATTEMPTS, e,
                )
                continue

            term = sanitize_devanagari(response.content)
            if has_devanagari(term):
                return term

            logger.info(
                "No Devanagari in generated term %r, trying translation",
                response.content[:60],
            )
            break

        return await self._translate_to_sanskrit(query) or query

    async def _translate_to_sanskrit(self, query: str) -> str | None:
        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": query}],
                system=_TRANSLATE_SYSTEM,
                temperature=settings.search_term_temperature,
                max_tokens=64,
            )
        except Exception as e:
            logger.warning("Sanskrit translation of query failed: %s", e)
            return None

        term = sanitize_devanagari(response.content)
        return term if has_devanagari(term) else None


# ---------------------------------------------------------------------------
# Text Helpers
# ---------------------------------------------------------------------------


def sanitize_devanagari(text: str) -> str:
    """Drop Devanagari runs garbled into '?' and collapse whitespace."""
    if not text:
        return ""
    cleaned = _MALFORMED_DEVANAGARI_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", cleaned).strip().strip('"').strip()


def has_devanagari(text: str) -> bool:
    return bool(text) and _DEVANAGARI_RE.search(text) is not None
