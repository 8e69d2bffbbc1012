"""Digest generator: fetch → recency filter → score → top N → summarize → highlights."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from ai_digest.config import AppConfig, DEFAULT_BATCH_SIZE, DEFAULT_HOURS, DEFAULT_LANG, DEFAULT_MAX_CONCURRENT_BATCHES, DEFAULT_TOP_N
from ai_digest.connectors.factory import build_parser
from ai_digest.connectors.fetcher import FeedFetcher
from ai_digest.digest.batching import InvokeFn
from ai_digest.digest.scorer import ArticleScorer
from ai_digest.digest.summarizer import ArticleSummarizer, fallback_summary
from ai_digest.errors import NoArticlesError, NoRecentArticlesError
from ai_digest.storage.cache import FeedCache
from ai_digest.storage.models import Article, FeedSource, RunStats, ScoredArticle, ScoreResult

logger = logging.getLogger(__name__)


@dataclass
class DigestResult:
    """The final digest: ranked articles, highlights paragraph and run statistics."""

    articles: list[ScoredArticle] = field(default_factory=list)
    highlights: str = ""
    stats: Optional[RunStats] = None


def filter_recent(articles: Sequence[Article], hours: int, now: datetime) -> list[Article]:
    """Keep articles published strictly after ``now - hours``."""
    cutoff = now - timedelta(hours=hours)
    return [a for a in articles if a.pub_date > cutoff]


def select_top(
    articles: Sequence[Article],
    scores: dict[int, ScoreResult],
    top_n: int,
) -> list[tuple[Article, ScoreResult]]:
    """Rank by total score (descending, stable) and keep the first ``top_n``."""
    ranked = [(a, scores.get(i) or ScoreResult.neutral()) for i, a in enumerate(articles)]
    ranked.sort(key=lambda pair: pair[1].total, reverse=True)
    return ranked[:top_n]


class DigestGenerator:
    """End-to-end digest pipeline over a set of feed sources.

    Usage:
        generator = DigestGenerator(client.invoke, fetcher=FeedFetcher())
        result = await generator.generate(sources, hours=48, top_n=15, lang="zh")
    """

    def __init__(
        self,
        invoke: InvokeFn,
        fetcher: Optional[FeedFetcher] = None,
        cache: Optional[FeedCache] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_BATCHES,
    ) -> None:
        self.invoke = invoke
        self.fetcher = fetcher or FeedFetcher()
        self.cache = cache
        self.scorer = ArticleScorer(invoke, batch_size, max_concurrent)
        self.summarizer = ArticleSummarizer(invoke, batch_size, max_concurrent)

    @classmethod
    def from_config(cls, config: AppConfig, invoke: InvokeFn, use_cache: bool = True) -> DigestGenerator:
        fetcher = FeedFetcher(
            parser=build_parser(config.feeds.parser),
            concurrency=config.feeds.concurrency,
            timeout=config.feeds.timeout_seconds,
        )
        cache = None
        if use_cache and config.cache.enabled:
            cache = FeedCache(config.cache.path, ttl_minutes=config.cache.ttl_minutes)
        return cls(
            invoke,
            fetcher=fetcher,
            cache=cache,
            batch_size=config.digest.batch_size,
            max_concurrent=config.digest.max_concurrent_batches,
        )

    async def collect(self, sources: Sequence[FeedSource]) -> tuple[list[Article], int]:
        """Return ``(articles, succeeded_sources)``, from the cache when it is fresh."""
        if self.cache is not None:
            cached = await self.cache.read()
            if cached is not None:
                return cached, len({a.source_name for a in cached})

        summary = await self.fetcher.fetch_feeds(sources)
        logger.info(
            "Fetched %d articles from %d/%d feeds (%d failed) in %.1fs",
            len(summary.articles),
            summary.succeeded,
            len(sources),
            summary.failed,
            summary.duration_seconds,
        )
        if self.cache is not None and summary.articles:
            await self.cache.write(summary.articles, len(sources))
        return summary.articles, summary.succeeded

    async def generate(
        self,
        sources: Sequence[FeedSource],
        hours: int = DEFAULT_HOURS,
        top_n: int = DEFAULT_TOP_N,
        lang: str = DEFAULT_LANG,
        now: Optional[datetime] = None,
        total_feeds: Optional[int] = None,
    ) -> DigestResult:
        """Run the full pipeline.

        ``total_feeds`` is the configured feed count reported in the stats when
        only a subset of ``sources`` is fetched (test mode).

        Raises NoArticlesError when no feed produced anything and
        NoRecentArticlesError when nothing falls inside the time range.
        """
        t0 = time.monotonic()
        logger.info("Step 1/5: fetching %d feeds", len(sources))
        articles, succeeded = await self.collect(sources)
        if not articles:
            raise NoArticlesError("No articles fetched from any feed. Check your network connection.")

        logger.info("Step 2/5: filtering by time range (%d hours)", hours)
        now = now or datetime.now(timezone.utc)
        recent = filter_recent(articles, hours, now)
        logger.info("Found %d articles within the last %d hours", len(recent), hours)
        if not recent:
            raise NoRecentArticlesError(hours)

        logger.info("Step 3/5: scoring %d articles", len(recent))
        scores = await self.scorer.score(recent)
        top = select_top(recent, scores, top_n)
        if top:
            logger.info("Top %d selected (score range %d - %d)", len(top), top[-1][1].total, top[0][1].total)

        logger.info("Step 4/5: summarizing %d articles", len(top))
        summaries = await self.summarizer.summarize([a for a, _ in top], lang)
        final = [
            ScoredArticle.build(article, score, summaries.get(i) or fallback_summary(article))
            for i, (article, score) in enumerate(top)
        ]

        logger.info("Step 5/5: generating highlights")
        highlights = await self.summarizer.highlights(final, lang)

        stats = RunStats(
            total_feeds=len(sources) if total_feeds is None else total_feeds,
            success_feeds=succeeded,
            total_articles=len(articles),
            filtered_articles=len(recent),
            hours=hours,
            lang=lang,
        )
        logger.info(
            "Digest ready in %.1fs: %d sources → %d articles → %d recent → %d selected",
            time.monotonic() - t0,
            succeeded,
            len(articles),
            len(recent),
            len(final),
        )
        return DigestResult(articles=final, highlights=highlights, stats=stats)
