# =============================================================================
# Verse Embeddings — Corpus Vectors and Search-Term Vectors
# =============================================================================
#
# Two callers, two shapes of input:
#
#   scripts/index_corpus.py ──▶ embed_verses(passages)  ──▶ ChromaVerseIndex.add_verses
#   ChromaVerseIndex.search ──▶ embed_term("अग्नि होत्र") ──▶ collection.query
#
# Verses are embedded as documents (reference + Devanagari text with the
# danda punctuation removed); search terms are embedded as queries. With
# EMBEDDING_TASK_PROMPTS=true both sides get the EmbeddingGemma-style
# "title: ... | text: ..." / "task: search result | query: ..." prompts,
# which asymmetric retrieval models expect.
#
# DESIGN DECISION: Sync API. The Chroma client is synchronous too, and the
# verse index already runs search in asyncio.to_thread(), so the term
# embedding happens on the same worker thread as the Chroma query.
#
# DESIGN DECISION: Vectors are cut to EMBEDDING_DIMENSIONS client-side.
# Not every OpenAI-compatible endpoint honours the `dimensions` parameter;
# Matryoshka-trained models keep their quality under prefix truncation, and
# a Chroma collection only accepts one vector length.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from functools import lru_cache

from openai import OpenAI

from rigveda_qa.agents.types import Passage
from rigveda_qa.config import settings

logger = logging.getLogger(__name__)

_DANDA_RE = re.compile(r"[।॥|]+")
_WHITESPACE_RE = re.compile(r"\s+")

_QUERY_PROMPT = "task: search result | query: "
_DOCUMENT_PROMPT = "title: {title} | text: "


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# API key resolution order:
#   1. OPENAI_API_KEY (explicit embedding key)
#   2. LLM_API_KEY (shared key for an OpenAI-compatible provider)
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Input Text
# ---------------------------------------------------------------------------


def normalize_verse_text(text: str) -> str:
    """Drop danda/double-danda markers and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", _DANDA_RE.sub(" ", text)).strip()


def verse_document(passage: Passage) -> str:
    """
    The text embedded for one verse.

    The reference travels with the verse text so that a verse whose text is
    missing still gets a non-empty input (embedding endpoints reject "").
    """
    title = passage.title or f"{passage.book or 'Rigveda'} {passage.context_key}".strip()
    body = normalize_verse_text(passage.text)
    if settings.embedding_task_prompts:
        return _DOCUMENT_PROMPT.format(title=title) + body
    return f"{title}: {body}" if body else title


def term_query(term: str) -> str:
    text = normalize_verse_text(term)
    if settings.embedding_task_prompts:
        return _QUERY_PROMPT + text
    return text


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_verses(
    passages: Sequence[Passage],
    batch_size: int | None = None,
) -> list[list[float]]:
    """
    Embed corpus verses for indexing.

    Processes verses in sub-batches and returns vectors in the SAME ORDER
    as the input, ready for ChromaVerseIndex.add_verses().

    Raises:
        ValueError: If no embedding API key is configured, or the model
            returns vectors shorter than EMBEDDING_DIMENSIONS.
        openai.APIError: If the embedding API call fails.
    """
    if not passages:
        return []

    documents = [verse_document(p) for p in passages]
    _batch_size = batch_size or settings.embedding_batch_size

    vectors: list[list[float]] = []
    for start in range(0, len(documents), _batch_size):
        batch = documents[start : start + _batch_size]
        logger.info(
            "Embedding verses %d-%d of %d (%s .. %s)",
            start + 1,
            start + len(batch),
            len(documents),
            passages[start].context_key,
            passages[start + len(batch) - 1].context_key,
        )
        vectors.extend(_request_embeddings(batch))

    logger.info(
        "Embedded %d verses (model=%s, dimensions=%d)",
        len(vectors), settings.embedding_model, settings.embedding_dimensions,
    )
    return vectors


def embed_term(term: str) -> list[float]:
    """
    Embed one search term (usually a short Devanagari phrase).

    Terms repeat across runs (the analyzer's fallback terms are a fixed
    set), so vectors are cached per process.
    """
    text = term_query(term)
    if not text:
        raise ValueError("Cannot embed an empty search term")
    return list(_embed_term_cached(text))


@lru_cache(maxsize=512)
def _embed_term_cached(text: str) -> tuple[float, ...]:
    return tuple(_request_embeddings([text])[0])


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _request_embeddings(texts: list[str]) -> list[list[float]]:
    create_kwargs: dict = {
        "model": settings.embedding_model,
        "input": texts,
    }
    if settings.embedding_dimensions:
        create_kwargs["dimensions"] = settings.embedding_dimensions

    response = _get_client().embeddings.create(**create_kwargs)

    # Order by response index; a mismatch would silently attach the
    # wrong vector to a verse.
    vectors: list[list[float]] = [[] for _ in texts]
    for item in sorted(response.data, key=lambda x: x.index):
        vectors[item.index] = _fit_dimensions(list(item.embedding))
    return vectors


def _fit_dimensions(vector: list[float]) -> list[float]:
    wanted = settings.embedding_dimensions
    if not wanted:
        return vector
    if len(vector) < wanted:
        raise ValueError(
            f"Embedding model returned {len(vector)} dimensions, "
            f"expected at least {wanted}"
        )
    return vector[:wanted]
