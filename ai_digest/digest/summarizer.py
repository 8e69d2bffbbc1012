"""LLM summaries, translated titles and the daily highlights paragraph."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ai_digest.config import DEFAULT_BATCH_SIZE, DEFAULT_LANG, DEFAULT_MAX_CONCURRENT_BATCHES
from ai_digest.digest.batching import Batch, IndexedItem, InvokeFn, iter_result_records, run_batched
from ai_digest.storage.models import Article, ScoredArticle, SummaryResult

logger = logging.getLogger(__name__)

SUMMARY_DESCRIPTION_CHARS = 800
FALLBACK_SUMMARY_CHARS = 200
HIGHLIGHT_ARTICLES = 10
HIGHLIGHT_SUMMARY_CHARS = 100

LANG_INSTRUCTIONS = {
    "zh": "请用中文撰写摘要和推荐理由。如果原文是英文，请翻译为中文。标题翻译也用中文。",
    "en": "Write summaries, reasons, and title translations in English.",
}

SUMMARY_PROMPT = """You are an expert at summarizing technical content. For each article below, produce three things:

1. titleZh: a natural translation of the title into the output language. Keep it unchanged if it already is in that language.
2. summary: a structured 4-6 sentence summary that lets the reader understand the core content without opening the article:
   - the core problem or topic (1 sentence)
   - the key arguments, technical approach or findings (2-3 sentences)
   - the conclusion or the author's main point (1 sentence)
3. reason: one sentence on why it is worth reading. The summary says what it is; the reason says why it matters.

{lang_instruction}

Summary rules:
- Get straight to the point; never open with "This article discusses..."
- Include concrete technical terms, data, project names and opinions
- Keep key numbers and metrics (performance gains, user counts, version numbers)
- When the article compares options, name what is compared and the conclusion
- Goal: 30 seconds of reading decides whether the original is worth 10 minutes

## Articles to summarize

{articles}

Return strict JSON only, following this schema:
{{
  "results": [
    {{
      "index": 0,
      "titleZh": "translated title",
      "summary": "summary...",
      "reason": "why it is worth reading..."
    }}
  ]
}}"""

HIGHLIGHTS_PROMPT = """Based on the following list of today's selected technology articles, write a 3-5 sentence "today's highlights" overview.
Requirements:
- Distill the 2-3 main trends or topics in tech today
- Do not list articles one by one; synthesize at a high level
- Keep it concise and punchy, like a news lede
{lang_note}

Articles:
{articles}

Return the overview as plain text only: no JSON and no markdown."""

HIGHLIGHT_LANG_NOTES = {
    "zh": "用中文回答。",
    "en": "Write in English.",
}


def build_summary_prompt(batch: Batch[Article], lang: str = DEFAULT_LANG) -> str:
    articles = "\n\n---\n\n".join(
        f"Index {item.index}: [{item.value.source_name}] {item.value.title}\n"
        f"URL: {item.value.link}\n"
        f"{item.value.description[:SUMMARY_DESCRIPTION_CHARS]}"
        for item in batch.items
    )
    return SUMMARY_PROMPT.format(
        lang_instruction=LANG_INSTRUCTIONS.get(lang, LANG_INSTRUCTIONS["en"]),
        articles=articles,
    )


def fallback_summary(article: Article) -> SummaryResult:
    """Summary used when the model produced nothing for ``article``."""
    return SummaryResult(
        title_zh=article.title,
        summary=article.description[:FALLBACK_SUMMARY_CHARS] or article.title,
        reason="",
    )


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def normalize_summary(record: dict[str, Any]) -> SummaryResult:
    return SummaryResult(
        title_zh=_text(record.get("titleZh")),
        summary=_text(record.get("summary")),
        reason=_text(record.get("reason")),
    )


def _parse_summaries(parsed: dict[str, Any], batch: Batch[Article]) -> dict[int, SummaryResult]:
    return {index: normalize_summary(record) for index, record in iter_result_records(parsed)}


def _fallback(item: IndexedItem[Article]) -> SummaryResult:
    return fallback_summary(item.value)


class ArticleSummarizer:
    """Generate translated titles, summaries and "why read" lines via an LLM."""

    def __init__(
        self,
        invoke: InvokeFn,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_BATCHES,
    ) -> None:
        self.invoke = invoke
        self.batch_size = batch_size
        self.max_concurrent = max_concurrent

    async def summarize(self, articles: Sequence[Article], lang: str = DEFAULT_LANG) -> dict[int, SummaryResult]:
        """Return ``{index: SummaryResult}`` keyed by position in ``articles``."""
        return await run_batched(
            articles,
            invoke=self.invoke,
            build_prompt=lambda batch: build_summary_prompt(batch, lang),
            parse_results=_parse_summaries,
            fallback=_fallback,
            batch_size=self.batch_size,
            max_concurrent=self.max_concurrent,
            label="Summary",
        )

    async def highlights(self, articles: Sequence[ScoredArticle], lang: str = DEFAULT_LANG) -> str:
        return await generate_highlights(articles, self.invoke, lang)


async def summarize_articles(
    articles: Sequence[Article],
    invoke: InvokeFn,
    lang: str = DEFAULT_LANG,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT_BATCHES,
) -> dict[int, SummaryResult]:
    return await ArticleSummarizer(invoke, batch_size, max_concurrent).summarize(articles, lang)


def build_highlights_prompt(articles: Sequence[ScoredArticle], lang: str = DEFAULT_LANG) -> str:
    lines = "\n".join(
        f"{i}. [{a.category}] {a.display_title} — {a.summary[:HIGHLIGHT_SUMMARY_CHARS]}"
        for i, a in enumerate(articles[:HIGHLIGHT_ARTICLES], 1)
    )
    return HIGHLIGHTS_PROMPT.format(
        lang_note=HIGHLIGHT_LANG_NOTES.get(lang, HIGHLIGHT_LANG_NOTES["en"]),
        articles=lines,
    )


async def generate_highlights(
    articles: Sequence[ScoredArticle],
    invoke: InvokeFn,
    lang: str = DEFAULT_LANG,
) -> str:
    """One-paragraph synthesis of the top articles; ``""`` on any failure."""
    if not articles:
        return ""
    try:
        text = await invoke(build_highlights_prompt(articles, lang))
    except Exception as e:  # noqa: BLE001
        logger.warning("Highlights generation failed: %s", e)
        return ""
    return (text or "").strip()
