"""Tolerant extraction of a JSON object from model text."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from ai_digest.errors import ResponseParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)
_RESULTS_RE = re.compile(r'\{\s*"results"\s*:\s*\[.*?\]\s*\}', re.DOTALL)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text)


def _outer_object(text: str) -> Optional[str]:
    """Substring from the first ``{`` to the last ``}``."""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return None


def _results_object(text: str) -> Optional[str]:
    """Narrow ``{"results": [...]}`` match for when stray braces surround the JSON."""
    m = _RESULTS_RE.search(text)
    return m.group(0) if m else None


_STRATEGIES: List[Callable[[str], Optional[str]]] = [_outer_object, _results_object]


def parse_structured_response(text: str) -> Dict[str, Any]:
    """Parse the first JSON object that can be extracted from ``text``.

    Raises ResponseParseError (with a prefix of the raw text) when no strategy
    yields a JSON object.
    """
    cleaned = (text or "").strip()
    if "```" in cleaned:
        cleaned = strip_code_fences(cleaned)
        logger.debug("Removed markdown code fences")

    for i, strategy in enumerate(_STRATEGIES, 1):
        extracted = strategy(cleaned)
        if extracted is None:
            continue
        try:
            parsed = json.loads(extracted)
        except ValueError as e:
            logger.debug("Extraction method %d failed: %s", i, e)
            continue
        if isinstance(parsed, dict):
            logger.debug("JSON parsed with extraction method %d", i)
            return parsed

    raise ResponseParseError(
        f"Failed to parse JSON response after trying all extraction methods. "
        f"Raw text (first 200 chars): {(text or '')[:200]!r}"
    )
