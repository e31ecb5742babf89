# =============================================================================
# Generator Agent — Grounded Answer Synthesis
# =============================================================================
#
# Writes the final answer from the translated evidence only. Two shapes:
#
#   stream_answer()  — async generator of text fragments. Lazy: nothing is
#                      requested until the first fragment is awaited. Checks
#                      the caller's cancel event before every fragment and
#                      simply stops when it is set. Provider errors are NOT
#                      caught; the consumer decides what a failure means.
#   generate()       — single-shot variant returning {success, response}.
#
# Verses are numbered [1], [2], ... with their Mandala.Hymn.Verse locator
# so the model can cite them.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from rigveda_qa.agents.types import GeneratorInput, Passage
from rigveda_qa.config import settings
from rigveda_qa.services.llm import LLMProvider

logger = logging.getLogger(__name__)

_GENERATOR_SYSTEM = (
    "You are a RigVeda scholar answering questions about the RigVeda.\n\n"
    "Rules:\n"
    "- Answer ONLY from the verses and translations provided\n"
    "- Never use outside knowledge or other texts (Upanishads, Puranas, "
    "epics, other Vedas)\n"
    "- Cite verses by their Mandala.Hymn.Verse reference, e.g. (10.129.1)\n"
    "- Put Sanskrit in **bold** and translations in *italics*\n"
    "- If the verses do not answer the question, say so plainly and "
    "describe what they do contain\n"
    "- Be concise and well structured"
)


class GeneratorAgent:
    def __init__(self, llm: LLMProvider) -> None:
        self._llm = llm

    async def stream_answer(
        self,
        user_query: str,
        verses: list[Passage],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Yield answer fragments until the model finishes or the run is cancelled."""
        if not verses:
            return

        logger.info("Generating answer from %d verses", len(verses))
        messages = [{"role": "user", "content": _format_request(user_query, verses)}]
        fragments = self._llm.stream(
            messages=messages,
            system=_GENERATOR_SYSTEM,
            temperature=settings.generation_temperature,
        )
        try:
            async for fragment in fragments:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Generation cancelled")
                    return
                yield fragment
        finally:
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()

    async def generate(self, request: GeneratorInput) -> dict[str, Any]:
        if not request.translated_verses:
            return {"success": False, "response": "", "error": "No verses to answer from"}

        response = await self._llm.complete(
            messages=[{
                "role": "user",
                "content": _format_request(request.user_query, request.translated_verses),
            }],
            system=_GENERATOR_SYSTEM,
            temperature=settings.generation_temperature,
        )
        return {"success": bool(response.content.strip()), "response": response.content}


def _format_request(user_query: str, verses: list[Passage]) -> str:
    """
    Render the question and numbered evidence for the model.

    Example:
        [1] 10.129.1 (Mandala 10):
        Sanskrit: नासदासीन्नो सदासीत्तदानीं ...
        Translation: There was neither non-existence nor existence then ...
    """
    sections = []
    for i, verse in enumerate(verses, 1):
        book = f" ({verse.book})" if verse.book else ""
        lines = [f"[{i}] {verse.context_key or verse.id}{book}:"]
        if verse.text:
            lines.append(f"Sanskrit: {verse.text}")
        if verse.translation:
            lines.append(f"Translation: {verse.translation}")
        sections.append("\n".join(lines))

    return (
        f"Question: {user_query}\n\n"
        f"RigVeda verses ({len(verses)}):\n\n" + "\n\n---\n\n".join(sections)
    )
