"""Running set of verses judged relevant during one orchestrator run."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from rigveda_qa.agents.types import Passage

logger = logging.getLogger(__name__)


class EvidenceAccumulator:
    """
    Ordered, append-only collection of passages deduplicated by identity key.

    Owned by a single run; the orchestrator hands out snapshots, never the
    accumulator itself.
    """

    def __init__(self) -> None:
        self._passages: list[Passage] = []
        self._keys: set[str] = set()

    def add_new(self, candidates: Iterable[Passage]) -> int:
        """Append candidates whose key is not yet present. Returns how many were added."""
        added = 0
        for passage in candidates:
            if passage.key in self._keys:
                continue
            self._keys.add(passage.key)
            self._passages.append(passage)
            added += 1

        logger.debug("Evidence: +%d (total %d)", added, len(self._passages))
        return added

    def size(self) -> int:
        return len(self._passages)

    def __len__(self) -> int:
        return len(self._passages)

    def snapshot(self) -> list[Passage]:
        return list(self._passages)
