"""LLM scoring: relevance, quality and timeliness on a 1-10 scale, plus category and keywords."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Sequence

from ai_digest.config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_CONCURRENT_BATCHES
from ai_digest.digest.batching import Batch, IndexedItem, InvokeFn, iter_result_records, run_batched
from ai_digest.storage.models import DEFAULT_CATEGORY, VALID_CATEGORIES, Article, ScoreResult

logger = logging.getLogger(__name__)

SCORE_MIN = 1
SCORE_MAX = 10
NEUTRAL_SCORE = 5
MAX_KEYWORDS = 4
SCORING_DESCRIPTION_CHARS = 300

SCORING_PROMPT = """You are a technical content curator selecting articles for a daily digest aimed at technology enthusiasts.

Score each article below on three dimensions (integers 1-10, 10 is best), assign exactly one category and extract 2-4 keywords.

## Scoring dimensions

### 1. relevance - value to people working in tech, programming, AI and the internet
- 10: a major event or breakthrough every technologist should know about
- 7-9: valuable to most technology practitioners
- 4-6: valuable to a specific technical field
- 1-3: barely related to the tech industry

### 2. quality - depth and writing quality of the article itself
- 10: deep analysis, original insight, well sourced
- 7-9: in-depth with a distinct point of view
- 4-6: accurate and clearly written
- 1-3: shallow or a mere repost

### 3. timeliness - is it worth reading right now
- 10: a major ongoing event or an important tool released just now
- 7-9: related to a recent hot topic
- 4-6: evergreen content, not outdated
- 1-3: outdated or without time value

## Categories (pick exactly one)
- ai-ml: AI, machine learning, LLMs, deep learning
- security: security, privacy, vulnerabilities, cryptography
- engineering: software engineering, architecture, programming languages, system design
- tools: developer tools, open source projects, newly released libraries or frameworks
- opinion: industry opinion, personal reflection, careers, culture
- other: none of the above fits

## Keywords
Extract 2-4 short English keywords that best represent the topic (e.g. "Rust", "LLM", "database", "performance").

## Articles to score

{articles}

Return strict JSON only, no markdown code fences and no other text, following this schema:
{{
  "results": [
    {{
      "index": 0,
      "relevance": 8,
      "quality": 7,
      "timeliness": 9,
      "category": "engineering",
      "keywords": ["Rust", "compiler", "performance"]
    }}
  ]
}}"""


def build_scoring_prompt(batch: Batch[Article]) -> str:
    articles = "\n\n---\n\n".join(
        f"Index {item.index}: [{item.value.source_name}] {item.value.title}\n"
        f"{item.value.description[:SCORING_DESCRIPTION_CHARS]}"
        for item in batch.items
    )
    return SCORING_PROMPT.format(articles=articles)


def clamp_score(value: Any) -> int:
    """Round half-up and clamp into [1, 10]; non-numeric values become neutral."""
    if isinstance(value, bool):
        return NEUTRAL_SCORE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    if not math.isfinite(number):
        return NEUTRAL_SCORE
    return max(SCORE_MIN, min(SCORE_MAX, math.floor(number + 0.5)))


def normalize_category(value: Any) -> str:
    return value if isinstance(value, str) and value in VALID_CATEGORIES else DEFAULT_CATEGORY


def normalize_keywords(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(k) for k in value[:MAX_KEYWORDS]]


def normalize_score(record: Dict[str, Any]) -> ScoreResult:
    """Validate one model record into a ScoreResult."""
    return ScoreResult(
        relevance=clamp_score(record.get("relevance")),
        quality=clamp_score(record.get("quality")),
        timeliness=clamp_score(record.get("timeliness")),
        category=normalize_category(record.get("category")),
        keywords=normalize_keywords(record.get("keywords")),
    )


def _parse_scores(parsed: Dict[str, Any], batch: Batch[Article]) -> Dict[int, ScoreResult]:
    return {index: normalize_score(record) for index, record in iter_result_records(parsed)}


def _fallback_score(item: IndexedItem[Article]) -> ScoreResult:
    return ScoreResult.neutral()


class ArticleScorer:
    """Score articles in batches through an LLM."""

    def __init__(
        self,
        invoke: InvokeFn,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_BATCHES,
    ) -> None:
        self.invoke = invoke
        self.batch_size = batch_size
        self.max_concurrent = max_concurrent

    async def score(self, articles: Sequence[Article]) -> Dict[int, ScoreResult]:
        """Return ``{index: ScoreResult}`` with one entry per article."""
        return await run_batched(
            articles,
            invoke=self.invoke,
            build_prompt=build_scoring_prompt,
            parse_results=_parse_scores,
            fallback=_fallback_score,
            batch_size=self.batch_size,
            max_concurrent=self.max_concurrent,
            label="Scoring",
        )


async def score_articles(
    articles: Sequence[Article],
    invoke: InvokeFn,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT_BATCHES,
) -> Dict[int, ScoreResult]:
    return await ArticleScorer(invoke, batch_size, max_concurrent).score(articles)
