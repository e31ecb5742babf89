# =============================================================================
# Verse Index — Pluggable Search Backend Protocol
# =============================================================================
#
# The searcher only needs three things from an index: free-text search,
# lookup by verse reference, and a warm-up hook. Two implementations:
#
#   VerseIndex (Protocol)
#   ├── KeywordVerseIndex — in-memory substring scoring over the corpus
#   │                       file. No infra, no embeddings; the default for
#   │                       local development and tests.
#   └── ChromaVerseIndex  — ChromaDB cosine search over pre-computed
#       ├── add_verses()  — sync, called by scripts/index_corpus.py
#       ├── search()      — async via asyncio.to_thread() wrapper
#       └── lookup()      — metadata filter on mandala/hymn/verse
#
# CORPUS FORMAT: a JSON list of records
#   {"id": "rv-10.129.1", "text": "<Devanagari>", "book": "Rigveda",
#    "bookContext": "10.129.1"}
#
# Scores are passed through for display only; no caller ranks or filters
# on them after the index returns.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol

import chromadb

from rigveda_qa.agents.types import Passage
from rigveda_qa.config import settings

logger = logging.getLogger(__name__)

_TOKEN_SPLIT_RE = re.compile(r"[\s|।॥,.;:!?()\"'\[\]]+")
_REFERENCE_RE = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VerseIndex(Protocol):
    """Search capability consumed by the searcher agent."""

    async def initialize(self) -> None:
        """Load or connect. Safe to call more than once."""
        ...

    async def search(self, query: str, top_k: int = 5) -> list[Passage]:
        """Return up to top_k verses, best first."""
        ...

    async def lookup(self, reference: str, limit: int = 5) -> list[Passage]:
        """
        Return verses for a Mandala.Hymn or Mandala.Hymn.Verse reference,
        in verse order. Unknown or malformed references yield [].
        """
        ...


# ---------------------------------------------------------------------------
# Corpus Loading
# ---------------------------------------------------------------------------


def load_corpus(path: str | Path) -> list[Passage]:
    """
    Read a corpus JSON file into Passages.

    Records without text or without any identity are skipped with a
    warning.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a JSON list.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Corpus file {path} must contain a JSON list")

    passages: list[Passage] = []
    skipped = 0
    for record in raw:
        passage = _passage_from_record(record)
        if passage is None:
            skipped += 1
            continue
        passages.append(passage)

    if skipped:
        logger.warning("Skipped %d malformed corpus records in %s", skipped, path)
    logger.info("Loaded %d verses from %s", len(passages), path)
    return passages


def parse_reference(reference: str) -> tuple[int, int, int | None] | None:
    """'10.129' → (10, 129, None); '10.129.3' → (10, 129, 3); else None."""
    match = _REFERENCE_RE.match(reference.strip())
    if not match:
        return None
    mandala, hymn, verse = match.groups()
    return int(mandala), int(hymn), int(verse) if verse else None


# ---------------------------------------------------------------------------
# Implementation 1: Keyword (in-memory)
# ---------------------------------------------------------------------------


class KeywordVerseIndex:
    """
    Substring-overlap search over an in-memory corpus.

    Score = fraction of query tokens found in the verse's text, book or
    reference. Substring rather than whole-token matching, because Sanskrit
    inflects and compounds: "अग्नि" should hit "अग्निमीळे".
    """

    def __init__(
        self,
        passages: Sequence[Passage] | None = None,
        corpus_path: str | Path | None = None,
        min_score: float | None = None,
    ) -> None:
        self._passages: list[Passage] | None = list(passages) if passages is not None else None
        self._corpus_path = corpus_path or settings.corpus_path
        self._min_score = settings.search_min_score if min_score is None else min_score
        self._haystacks: list[str] = []
        if self._passages is not None:
            self._build()

    async def initialize(self) -> None:
        if self._passages is None:
            self._passages = await asyncio.to_thread(load_corpus, self._corpus_path)
            self._build()

    async def search(self, query: str, top_k: int = 5) -> list[Passage]:
        await self.initialize()
        tokens = _tokenize(query)
        if not tokens:
            return []

        scored: list[tuple[float, int]] = []
        for position, haystack in enumerate(self._haystacks):
            hits = sum(1 for token in tokens if token in haystack)
            score = hits / len(tokens)
            if hits and score > self._min_score:
                scored.append((score, position))

        # Highest score first; corpus order breaks ties
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            _with_score(self._passages[position], round(score, 4))
            for score, position in scored[:top_k]
        ]

    async def lookup(self, reference: str, limit: int = 5) -> list[Passage]:
        await self.initialize()
        parsed = parse_reference(reference)
        if parsed is None:
            return []

        matches = [
            p for p in self._passages
            if _matches_reference(parse_reference(p.context_key), parsed)
        ]
        matches.sort(key=_verse_number)
        return [_with_score(p, 1.0) for p in matches[:limit]]

    def _build(self) -> None:
        self._haystacks = [
            " ".join((p.text, p.book, p.context_key, p.title)).lower()
            for p in self._passages
        ]


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVerseIndex:
    """
    ChromaDB-backed verse index.

    One collection holds every verse, with mandala/hymn/verse stored as
    integer metadata so reference lookups are plain where-filters.

    Modes:
    - Client/server: CHROMA_URL set
    - Persistent in-process: CHROMA_PERSIST_DIR set
    - Ephemeral in-process: neither (tests)
    """

    def __init__(
        self,
        collection_name: str | None = None,
        client: Any = None,
        embed_fn: Callable[[str], list[float]] | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        elif settings.chroma_persist_dir:
            self._client = chromadb.PersistentClient(path=settings.chroma_persist_dir)
        else:
            self._client = chromadb.Client()

        if embed_fn is None:
            from rigveda_qa.services.embedder import embed_term

            embed_fn = embed_term
        self._embed = embed_fn

        # Cosine distance; similarity = 1 - distance
        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    async def initialize(self) -> None:
        count = await asyncio.to_thread(self._collection.count)
        logger.info(
            "Chroma verse index ready: collection=%s, verses=%d",
            self._collection.name, count,
        )

    def add_verses(
        self,
        passages: Sequence[Passage],
        embeddings: Sequence[Sequence[float]],
    ) -> int:
        """Upsert verses with their embeddings. Returns the number stored."""
        if len(passages) != len(embeddings):
            raise ValueError(
                f"Got {len(passages)} verses but {len(embeddings)} embeddings"
            )
        if not passages:
            return 0

        self._collection.upsert(
            ids=[p.id for p in passages],
            documents=[p.text for p in passages],
            embeddings=[list(e) for e in embeddings],
            metadatas=[_verse_metadata(p) for p in passages],
        )
        logger.info("Stored %d verses in ChromaDB", len(passages))
        return len(passages)

    async def search(self, query: str, top_k: int = 5) -> list[Passage]:
        """
        Similarity search in ChromaDB.

        The Chroma client and the embedding client are both synchronous,
        so the whole round trip runs in a worker thread.
        """

        def _sync_search() -> list[Passage]:
            embedding = self._embed(query)
            results = self._collection.query(
                query_embeddings=[embedding],
                n_results=top_k,
                include=["documents", "metadatas", "distances"],
            )

            passages: list[Passage] = []
            if results and results["ids"] and results["ids"][0]:
                for i, chroma_id in enumerate(results["ids"][0]):
                    distance = results["distances"][0][i] if results["distances"] else 0.0
                    metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                    document = results["documents"][0][i] if results["documents"] else ""
                    passages.append(_passage_from_chroma(
                        chroma_id, document, metadata or {}, round(1.0 - distance, 4),
                    ))
            return passages

        return await asyncio.to_thread(_sync_search)

    async def lookup(self, reference: str, limit: int = 5) -> list[Passage]:
        parsed = parse_reference(reference)
        if parsed is None:
            return []
        mandala, hymn, verse = parsed

        conditions: list[dict[str, Any]] = [{"mandala": mandala}, {"hymn": hymn}]
        if verse is not None:
            conditions.append({"verse": verse})

        def _sync_lookup() -> list[Passage]:
            results = self._collection.get(
                where={"$and": conditions},
                include=["documents", "metadatas"],
            )
            passages = [
                _passage_from_chroma(chroma_id, document or "", metadata or {}, 1.0)
                for chroma_id, document, metadata in zip(
                    results["ids"], results["documents"], results["metadatas"],
                )
            ]
            passages.sort(key=_verse_number)
            return passages[:limit]

        return await asyncio.to_thread(_sync_lookup)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_index: KeywordVerseIndex | ChromaVerseIndex | None = None


def get_verse_index() -> KeywordVerseIndex | ChromaVerseIndex:
    """
    Return the configured verse index (lazy singleton).

    Reads `verse_index_backend` from settings:
    - "chroma"  → ChromaVerseIndex
    - otherwise → KeywordVerseIndex over `corpus_path`
    """
    global _index
    if _index is None:
        if settings.verse_index_backend == "chroma":
            logger.info("Using ChromaDB verse index")
            _index = ChromaVerseIndex()
        else:
            logger.info("Using keyword verse index (%s)", settings.corpus_path)
            _index = KeywordVerseIndex()
    return _index


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _tokenize(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT_RE.split(text.lower()) if t]


def _with_score(passage: Passage, score: float) -> Passage:
    return Passage(
        id=passage.id,
        context_key=passage.context_key,
        text=passage.text,
        book=passage.book,
        title=passage.title,
        score=score,
    )


def _verse_number(passage: Passage) -> int:
    parsed = parse_reference(passage.context_key)
    return (parsed[2] or 0) if parsed else 0


def _matches_reference(
    candidate: tuple[int, int, int | None] | None,
    wanted: tuple[int, int, int | None],
) -> bool:
    if candidate is None:
        return False
    if candidate[:2] != wanted[:2]:
        return False
    return wanted[2] is None or candidate[2] == wanted[2]


def _title(book: str, context_key: str) -> str:
    return f"{book or 'Unknown'} - {context_key or 'No context'}"


def _passage_from_record(record: Any) -> Passage | None:
    if not isinstance(record, dict):
        return None
    text = record.get("text")
    context_key = str(record.get("bookContext") or "").strip()
    passage_id = str(record.get("id") or context_key).strip()
    if not isinstance(text, str) or not text.strip() or not passage_id:
        return None
    book = str(record.get("book") or "")
    return Passage(
        id=passage_id,
        context_key=context_key,
        text=text.strip(),
        book=book,
        title=_title(book, context_key),
    )


def _verse_metadata(passage: Passage) -> dict[str, Any]:
    """
    Metadata stored alongside each verse.

    ChromaDB only accepts str/int/float/bool values, so a missing locator
    component is stored as 0 rather than None.
    """
    parsed = parse_reference(passage.context_key) or (0, 0, None)
    return {
        "book": passage.book,
        "bookContext": passage.context_key,
        "mandala": parsed[0],
        "hymn": parsed[1],
        "verse": parsed[2] or 0,
    }


def _passage_from_chroma(
    chroma_id: str,
    document: str,
    metadata: dict[str, Any],
    score: float,
) -> Passage:
    book = str(metadata.get("book") or "")
    context_key = str(metadata.get("bookContext") or "")
    return Passage(
        id=chroma_id,
        context_key=context_key,
        text=document,
        book=book,
        title=_title(book, context_key),
        score=score,
    )
