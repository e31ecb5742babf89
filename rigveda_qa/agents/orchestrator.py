# =============================================================================
# LangGraph Orchestrator — RigVeda Q&A Pipeline
# =============================================================================
#
# Wires the four agents into a LangGraph StateGraph:
#
#   START ──▶ gate ──▶ search ──▶ translate ──▶ generate ──▶ END
#               │         │
#               └─────────┴──▶ END   (aborted: off-topic / no evidence)
#
# - gate:      local keyword heuristic, no LLM call. Permissive.
# - search:    the search/analyse loop. Runs as a plain Python loop inside
#              the node; each round's search term depends on the previous
#              round's analysis, so there is nothing for a graph to route.
# - translate: one translator call over the accumulated evidence.
# - generate:  consumes the generator's stream into the final answer.
#
# DESIGN DECISION: Every agent output is validated before it is read.
# Agents are called through _call_* wrappers that catch exceptions and pass
# the raw result through validation.py. The loop only ever branches on
# validated envelopes.
#
# DESIGN DECISION: Per-run objects live in graph state.
# The progress callback and the cancel event are per run, so they travel
# in the state rather than on the orchestrator. They are not serialisable,
# which is fine as long as no checkpointer is configured (none is).
#
# DESIGN DECISION: The trace uses an additive reducer.
# Each node returns only the TraceSteps it produced; LangGraph concatenates
# them in node order.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import operator
from contextlib import aclosing
from dataclasses import asdict
from typing import Annotated, Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from rigveda_qa.agents.analyzer import AnalyzerAgent
from rigveda_qa.agents.evidence import EvidenceAccumulator
from rigveda_qa.agents.generator import GeneratorAgent
from rigveda_qa.agents.searcher import SearcherAgent
from rigveda_qa.agents.translator import TranslatorAgent
from rigveda_qa.agents.types import (
    AnalyzerInput,
    AnalyzerOutput,
    Passage,
    ProgressCallback,
    ProgressEvent,
    QueryResult,
    SearcherInput,
    SearcherOutput,
    TraceStep,
    TranslatorInput,
    TranslatorOutput,
)
from rigveda_qa.agents.validation import (
    validate_analyzer_output,
    validate_generator_output,
    validate_searcher_output,
    validate_translator_output,
)
from rigveda_qa.config import settings
from rigveda_qa.services.llm import LLMProvider, get_llm_provider
from rigveda_qa.services.verse_index import VerseIndex, get_verse_index

logger = logging.getLogger(__name__)


OFF_TOPIC_MESSAGE = (
    "Sorry, this question does not appear to be about the RigVeda. "
    "I can only answer questions related to the RigVeda corpus."
)
INSUFFICIENT_EVIDENCE_MESSAGE = (
    "Sorry, I could not find enough relevant information in the RigVeda "
    "to answer your question."
)
GENERATION_ERROR_MESSAGE = "Sorry, I encountered an error generating the response."

RIGVEDA_KEYWORDS = (
    "rigveda", "rig veda", "veda", "hymn", "mantra", "mandala",
    "agni", "indra", "soma", "varuna", "ushas", "surya",
    "sacrifice", "yajna", "ritual", "deity", "god", "goddess",
    "sanskrit", "verse", "sukta", "nasadiya", "purusha",
    "cosmic", "creation", "dharma", "rita", "brahman",
    "10.129", "10.90",
)

# Texts the corpus does not contain. A query naming one of these with no
# RigVeda keyword is the only thing the gate rejects.
OUT_OF_SCOPE_TEXTS = (
    "upanishad", "mahabharata", "ramayana", "purana", "bhagavad",
    "gita", "bible", "quran", "koran", "torah", "tripitaka", "guru granth",
)


# ---------------------------------------------------------------------------
# Graph State Schema
# ---------------------------------------------------------------------------


class QueryState(TypedDict, total=False):
    """
    State that flows through the graph. total=False so nodes return only
    the keys they update.
    """

    # --- Input (set by process_query) ---
    user_query: str
    progress_callback: ProgressCallback | None
    cancel_event: asyncio.Event | None

    # --- Intermediate (set by nodes) ---
    in_domain: bool
    evidence: list[Passage]
    final_verses: list[Passage]

    # --- Output ---
    trace: Annotated[list[TraceStep], operator.add]
    success: bool
    final_answer: str


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class QueryOrchestrator:
    """
    Runs one query at a time per call; safe to share across concurrent
    requests because all per-run data lives in the graph state.

    Agents can be injected (tests pass scripted fakes). Any agent not
    given is built on the shared LLM provider and verse index.
    """

    def __init__(
        self,
        searcher: Any = None,
        analyzer: Any = None,
        translator: Any = None,
        generator: Any = None,
        llm: LLMProvider | None = None,
        index: VerseIndex | None = None,
        max_iterations: int | None = None,
        min_evidence: int | None = None,
    ) -> None:
        if None in (searcher, analyzer, translator, generator):
            llm = llm or get_llm_provider()
        self._max_iterations = (
            settings.max_search_iterations if max_iterations is None else max_iterations
        )
        self._min_evidence = (
            settings.min_evidence_verses if min_evidence is None else min_evidence
        )

        self.searcher = searcher or SearcherAgent(llm, index or get_verse_index())
        self.analyzer = analyzer or AnalyzerAgent(llm, max_iterations=self._max_iterations)
        self.translator = translator or TranslatorAgent(llm)
        self.generator = generator or GeneratorAgent(llm)

        self._graph = self._build_graph()

    async def initialize(self, progress_callback: ProgressCallback | None = None) -> None:
        """Warm up the verse index before the first query."""
        _emit(progress_callback, "initialization", "Loading verse index...")
        init = getattr(self.searcher, "initialize", None)
        if init is not None:
            await init()
        _emit(progress_callback, "initialization_complete", "System ready", {"progress": 1})

    async def process_query(
        self,
        user_query: str,
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> QueryResult:
        """
        Answer one question.

        Args:
            user_query: The user's question.
            progress_callback: Receives a ProgressEvent at every stage
                boundary. Exceptions it raises are logged and ignored.
            cancel_event: Set it to stop answer generation early.

        Returns:
            QueryResult with the success flag, the ordered trace of stage
            outputs, and the final answer text.
        """
        logger.info("Processing query: '%s'", user_query[:80])

        final_state = await self._graph.ainvoke({
            "user_query": user_query,
            "progress_callback": progress_callback,
            "cancel_event": cancel_event,
        })

        result = QueryResult(
            success=final_state.get("success", False),
            trace=list(final_state.get("trace", [])),
            final_answer=final_state.get("final_answer", ""),
            verses=list(final_state.get("final_verses", [])),
        )
        logger.info(
            "Query finished: success=%s, trace=%d steps",
            result.success, len(result.trace),
        )
        return result

    # -----------------------------------------------------------------------
    # Graph Assembly
    # -----------------------------------------------------------------------

    def _build_graph(self):
        builder = StateGraph(QueryState)
        builder.add_node("gate", self._gate_node)
        builder.add_node("search", self._search_node)
        builder.add_node("translate", self._translate_node)
        builder.add_node("generate", self._generate_node)

        builder.add_edge(START, "gate")
        builder.add_conditional_edges(
            "gate",
            _route_after_gate,
            {"search": "search", END: END},
        )
        builder.add_conditional_edges(
            "search",
            _route_after_search,
            {"translate": "translate", END: END},
        )
        builder.add_edge("translate", "generate")
        builder.add_edge("generate", END)
        return builder.compile()

    # -----------------------------------------------------------------------
    # Node Functions
    # -----------------------------------------------------------------------

    async def _gate_node(self, state: QueryState) -> dict:
        callback = state.get("progress_callback")
        _emit(callback, "agent_start", "Starting query processing...")

        if not is_rigveda_query(state["user_query"]):
            logger.info("Gate rejected query as off-topic")
            _emit(callback, "error", "Query is not about the RigVeda")
            return {
                "in_domain": False,
                "success": False,
                "final_answer": OFF_TOPIC_MESSAGE,
            }

        _emit(callback, "notification", "Query is about the RigVeda - proceeding with search")
        return {"in_domain": True}

    async def _search_node(self, state: QueryState) -> dict:
        """
        The search/analyse loop.

        Every round counts against max_iterations, including rounds where
        the searcher returned nothing or the analyzer failed.
        """
        callback = state.get("progress_callback")
        user_query = state["user_query"]

        evidence = EvidenceAccumulator()
        previous_terms: list[str] = []
        suggestion: str | None = None
        trace: list[TraceStep] = []

        iteration = 0
        while iteration < self._max_iterations:
            _emit(
                callback, "loop_iteration",
                f"Search-analysis loop: iteration {iteration + 1}/{self._max_iterations} "
                f"({evidence.size()}/{self._min_evidence} verses found)",
                {
                    "iteration": iteration + 1,
                    "max_iterations": self._max_iterations,
                    "verses_found": evidence.size(),
                    "target_verses": self._min_evidence,
                    "search_suggestion": suggestion,
                },
            )
            _emit(
                callback, "search",
                f'Searching with term: "{suggestion}"' if suggestion
                else f'Searching for: "{user_query}"',
                {"iteration": iteration + 1, "search_term": suggestion or user_query},
            )

            search = await self._call_searcher(
                SearcherInput(user_query=user_query, search_suggestion=suggestion)
            )
            trace.append(TraceStep(tool="search", result=search))

            if not search.success or not search.search_results:
                _emit(callback, "search", f"No results found in iteration {iteration + 1}")
                iteration += 1
                continue

            previous_terms.append(search.search_term)
            _emit(
                callback, "search_complete",
                f"Found {len(search.search_results)} verses",
                {
                    "search_type": search.search_type,
                    "search_term": search.search_term,
                    "search_results": [asdict(p) for p in search.search_results],
                },
            )

            _emit(callback, "analysis", f"Analyzing {len(search.search_results)} verses...")
            analysis = await self._call_analyzer(AnalyzerInput(
                user_query=user_query,
                search_query=search.search_term,
                search_results=search.search_results,
                iteration_count=iteration,
                previous_search_terms=list(previous_terms),
            ))
            trace.append(TraceStep(tool="analyze", result=analysis))

            if not analysis.success:
                _emit(callback, "analysis", f"Analysis failed in iteration {iteration + 1}")
                iteration += 1
                continue

            _emit(
                callback, "analysis_complete",
                f"Analysis complete: {len(analysis.relevant_verses)} relevant verses found",
                {
                    "needs_more_search": analysis.needs_more_search,
                    "relevant_verse_count": len(analysis.relevant_verses),
                    "filtered_verse_count": len(analysis.filtered_verses),
                    "search_suggestion": analysis.search_suggestion,
                },
            )

            added = evidence.add_new(analysis.relevant_verses)
            _emit(
                callback, "verses_accumulated",
                f"Accumulated {added} new verses (total: {evidence.size()}/{self._min_evidence})",
                {
                    "new_verses": added,
                    "total_verses": evidence.size(),
                    "target_verses": self._min_evidence,
                },
            )

            suggestion = analysis.search_suggestion
            iteration += 1

            if evidence.size() >= self._min_evidence:
                logger.info("Evidence target reached after %d iterations", iteration)
                break
            if not analysis.needs_more_search and evidence.size() > 0:
                logger.info("Analyzer satisfied after %d iterations", iteration)
                break

        logger.info(
            "Search loop done: %d iterations, %d verses, terms=%s",
            iteration, evidence.size(), previous_terms,
        )

        if evidence.size() == 0:
            _emit(callback, "error", "No relevant verses found")
            return {
                "evidence": [],
                "trace": trace,
                "success": False,
                "final_answer": INSUFFICIENT_EVIDENCE_MESSAGE,
            }

        _emit(
            callback, "notification",
            f"Found {evidence.size()} relevant verses - proceeding to translation",
        )
        return {"evidence": evidence.snapshot(), "trace": trace}

    async def _translate_node(self, state: QueryState) -> dict:
        callback = state.get("progress_callback")
        evidence = state["evidence"]

        _emit(callback, "translation", f"Translating {len(evidence)} verses...")
        translation = await self._call_translator(
            TranslatorInput(user_query=state["user_query"], verses=evidence)
        )

        if translation.success:
            final_verses = translation.translated_verses
            _emit(
                callback, "translation_complete",
                f"Translation complete: {len(final_verses)} verses translated",
                {"translated_verses": len(final_verses)},
            )
        else:
            final_verses = evidence
            _emit(
                callback, "translation",
                "Translation had issues, proceeding with untranslated verses",
            )

        return {
            "final_verses": final_verses,
            "trace": [TraceStep(tool="translate", result=translation)],
        }

    async def _generate_node(self, state: QueryState) -> dict:
        callback = state.get("progress_callback")
        cancel_event = state.get("cancel_event")

        _emit(callback, "generation", "Generating answer...")

        fragments: list[str] = []
        error: str | None = None
        cancelled = False
        try:
            # The event is checked here rather than inside the generator, so
            # a run only counts as cancelled when the stream was cut short.
            stream = self.generator.stream_answer(state["user_query"], state["final_verses"])
            async with aclosing(stream) as fragment_stream:
                async for fragment in fragment_stream:
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        break
                    fragments.append(fragment)
        except Exception as e:
            logger.exception("Generator stream failed")
            error = str(e) or type(e).__name__

        answer = "".join(fragments)
        if cancelled:
            logger.info("Generation cancelled after %d fragments", len(fragments))
            error = error or "Generation cancelled"

        generation = validate_generator_output({
            "success": bool(answer) and error is None,
            "response": answer,
            "error": error,
        })
        trace = [TraceStep(tool="generate", result=generation)]

        if generation.success:
            _emit(callback, "complete", "Query processing complete")
            return {"trace": trace, "success": True, "final_answer": answer}

        _emit(callback, "error", error or "Generator produced no response")
        return {
            "trace": trace,
            "success": False,
            # A cancelled run keeps whatever text it already received
            "final_answer": answer if cancelled and answer else GENERATION_ERROR_MESSAGE,
        }

    # -----------------------------------------------------------------------
    # Agent Call Wrappers
    # -----------------------------------------------------------------------
    # Each wrapper is the only place its agent is invoked. Exceptions raised
    # by the agent or while reading its output become success=False
    # envelopes; every result goes through its validator.
    # -----------------------------------------------------------------------

    async def _call_searcher(self, request: SearcherInput) -> SearcherOutput:
        try:
            return validate_searcher_output(await self.searcher.search(request))
        except Exception as e:
            logger.exception("Searcher failed")
            return validate_searcher_output({
                "success": False,
                "search_results": [],
                "search_type": "error",
                "search_term": request.search_suggestion or request.user_query,
                "error": str(e),
            })

    async def _call_analyzer(self, request: AnalyzerInput) -> AnalyzerOutput:
        try:
            return validate_analyzer_output(await self.analyzer.analyze(request))
        except Exception as e:
            logger.exception("Analyzer failed")
            return validate_analyzer_output({
                "success": False,
                "relevant_verses": [],
                "filtered_verses": [],
                "needs_more_search": False,
                "error": str(e),
            })

    async def _call_translator(self, request: TranslatorInput) -> TranslatorOutput:
        try:
            return validate_translator_output(await self.translator.translate(request))
        except Exception as e:
            logger.exception("Translator failed")
            return validate_translator_output({
                "success": False,
                "translated_verses": [],
                "error": str(e),
            })


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def _route_after_gate(state: QueryState) -> str:
    return "search" if state.get("in_domain") else END


def _route_after_search(state: QueryState) -> str:
    return "translate" if state.get("evidence") else END


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def is_rigveda_query(user_query: str) -> bool:
    """
    Keyword gate. Rejects only a query that names a text outside the
    corpus and mentions nothing RigVeda-related; everything else passes,
    including empty queries.
    """
    query_lower = user_query.lower()
    if any(keyword in query_lower for keyword in RIGVEDA_KEYWORDS):
        return True
    return not any(text in query_lower for text in OUT_OF_SCOPE_TEXTS)


def _emit(
    callback: ProgressCallback | None,
    kind: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> None:
    if callback is None:
        return
    try:
        callback(ProgressEvent(kind=kind, message=message, data=data))
    except Exception:
        logger.warning("Progress callback raised on %r event", kind, exc_info=True)
