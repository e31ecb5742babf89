# =============================================================================
# Translator Agent — Sanskrit → English, One Call per Verse
# =============================================================================
#
# DESIGN DECISION: Per-verse calls run concurrently with asyncio.gather.
# The batch is small (bounded by the evidence the loop collected) and the
# calls are independent, so a batch costs roughly one call's latency.
#
# A verse whose call fails gets a placeholder translation instead of
# failing the batch; the generator still sees the Sanskrit text.
# =============================================================================

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

from rigveda_qa.agents.types import Passage, TranslatorInput
from rigveda_qa.config import settings
from rigveda_qa.services.llm import LLMProvider

logger = logging.getLogger(__name__)

_TRANSLATOR_SYSTEM = (
    "You are an expert translator of Vedic Sanskrit. Translate the RigVeda "
    "verse you are given from Devanagari into clear, scholarly English. "
    "Keep its poetic and ritual context, and briefly gloss key Sanskrit "
    "terms where that helps. Return only the translation."
)

# Placeholders written by upstream tools that do not count as a translation
_PLACEHOLDER_PREFIXES = ("Translation of:", "[Translation needed")


class TranslatorAgent:
    def __init__(self, llm: LLMProvider) -> None:
        self._llm = llm

    async def translate(self, request: TranslatorInput) -> dict[str, Any]:
        """Translate every verse that lacks a translation, preserving order."""
        if not request.verses:
            return {"success": True, "translated_verses": []}

        translated = await asyncio.gather(
            *(self._translate_verse(v) for v in request.verses)
        )
        logger.info("Translated %d verses", len(translated))
        return {"success": True, "translated_verses": list(translated)}

    async def _translate_verse(self, verse: Passage) -> Passage:
        if _has_translation(verse):
            return verse

        try:
            response = await self._llm.complete(
                messages=[{
                    "role": "user",
                    "content": (
                        f"Sanskrit verse ({verse.context_key or 'Unknown'}):\n"
                        f"{verse.text}\n\nEnglish translation:"
                    ),
                }],
                system=_TRANSLATOR_SYSTEM,
                temperature=settings.translation_temperature,
            )
            translation = _clean_translation(response.content)
        except Exception as e:
            logger.warning("Failed to translate verse %s: %s", verse.key, e)
            translation = f"[Translation unavailable: {e}]"

        return dataclasses.replace(verse, translation=translation)


def _has_translation(verse: Passage) -> bool:
    return bool(verse.translation) and not verse.translation.startswith(
        _PLACEHOLDER_PREFIXES
    )


def _clean_translation(text: str) -> str:
    """Strip a leading 'English Translation:' label the model sometimes echoes."""
    text = text.strip()
    if "Translation:" in text:
        text = text.rsplit("Translation:", 1)[-1].strip()
    return text
