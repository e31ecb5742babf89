# =============================================================================
# Tolerant JSON Extraction — Structured Data From LLM Text
# =============================================================================
#
# The analyzer asks the LLM for a JSON object, but models wrap it in
# markdown fences, prepend commentary, or append a sign-off. This module
# pulls the most plausible JSON object out of such text.
#
# Strategy:
#   1. Strip ```json fences.
#   2. Scan for balanced {...} candidates (braces inside strings ignored).
#   3. Keep candidates that parse to a dict and contain every required key.
#   4. Prefer the LAST qualifying candidate — models tend to restate their
#      final answer after thinking out loud.
#   5. Fall back to first '{' .. last '}' if nothing balanced parses.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

logger = logging.getLogger(__name__)


def _strip_code_fences(text: str) -> str:
    return (
        text.replace("```json", "")
        .replace("```JSON", "")
        .replace("```", "")
        .strip()
    )


def _find_json_candidates(text: str) -> list[str]:
    """Return every top-level balanced-brace substring, left to right."""
    candidates: list[str] = []
    in_string = False
    escape = False
    depth = 0
    start_idx: int | None = None

    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start_idx = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start_idx is not None:
                candidates.append(text[start_idx : i + 1])
                start_idx = None

    return candidates


def extract_json_object(
    text: Any,
    required_keys: Sequence[str] = (),
) -> dict[str, Any] | None:
    """
    Extract a JSON object from free-form LLM output.

    Args:
        text: Raw model output. Non-strings yield None.
        required_keys: Keys a candidate must contain to qualify.

    Returns:
        The parsed dict, or None if no qualifying object was found.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    cleaned = _strip_code_fences(text)

    parsed: list[dict[str, Any]] = []
    for candidate in _find_json_candidates(cleaned):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict) and all(k in value for k in required_keys):
            parsed.append(value)

    if parsed:
        return parsed[-1]

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            value = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict) and all(k in value for k in required_keys):
            return value

    logger.debug("No JSON object found in %d chars of model output", len(text))
    return None
