"""Concurrent feed fetcher.

Fetches every configured feed with a bounded number of requests in flight,
a per-request timeout, and per-feed failure isolation: a feed that times out,
returns a non-2xx status or cannot be reached contributes no articles and is
counted as failed, but never aborts the other feeds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence

import aiohttp

from ai_digest.config import DEFAULT_FEED_CONCURRENCY, DEFAULT_FEED_TIMEOUT
from ai_digest.connectors.base import BaseFeedParser
from ai_digest.connectors.rss import PatternFeedParser, parse_date
from ai_digest.pipeline.concurrency import bounded_gather
from ai_digest.storage.models import EPOCH, Article, FeedResult, FeedSource, FetchSummary

logger = logging.getLogger(__name__)

USER_AGENT = "AI-Daily-Digest/1.0 (RSS Reader)"
ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


class FeedFetcher:
    """Fetch and parse many feeds concurrently.

    Usage:
        fetcher = FeedFetcher()
        summary = await fetcher.fetch_feeds(sources)
        articles = summary.articles
    """

    def __init__(
        self,
        parser: Optional[BaseFeedParser] = None,
        concurrency: int = DEFAULT_FEED_CONCURRENCY,
        timeout: float = DEFAULT_FEED_TIMEOUT,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.parser = parser or PatternFeedParser()
        self.concurrency = concurrency
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent, "Accept": ACCEPT}

    async def fetch_all(self, sources: Sequence[FeedSource]) -> List[Article]:
        """Return all parsed articles, concatenated in source order."""
        summary = await self.fetch_feeds(sources)
        return summary.articles

    async def fetch_feeds(self, sources: Sequence[FeedSource]) -> FetchSummary:
        """Fetch every source and return per-source results plus totals."""
        summary = FetchSummary()
        if not sources:
            return summary
        t0 = time.monotonic()
        total = len(sources)
        done = 0
        logger.info("Fetching %d feeds (concurrency %d)...", total, self.concurrency)

        async with aiohttp.ClientSession(headers=self.headers) as session:

            async def _worker(source: FeedSource) -> FeedResult:
                nonlocal done
                result = await self.fetch_feed(session, source)
                done += 1
                logger.debug("Progress: %d/%d (%.1f%%)", done, total, done / total * 100)
                return result

            results = await bounded_gather(sources, _worker, self.concurrency)

        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                # fetch_feed isolates its own errors; this only guards programming errors
                logger.error("Feed task for %s crashed: %s", source.name, result)
                result = FeedResult(source=source, error=str(result))
            summary.results.append(result)

        summary.duration_seconds = time.monotonic() - t0
        logger.info(
            "Fetch complete: %d succeeded, %d failed, %d articles in %.1fs",
            summary.succeeded,
            summary.failed,
            len(summary.articles),
            summary.duration_seconds,
        )
        return summary

    async def fetch_feed(self, session: aiohttp.ClientSession, source: FeedSource) -> FeedResult:
        """Fetch one feed; every failure is captured in the returned FeedResult."""
        result = FeedResult(source=source)
        t0 = time.monotonic()
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with session.get(source.xml_url, timeout=timeout) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise aiohttp.ClientResponseError(
                        resp.request_info, resp.history, status=resp.status, message=f"HTTP {resp.status}"
                    )
                body = await resp.text(errors="replace")
            result.articles = self.to_articles(body, source)
            logger.info("%s: %d articles (%.0fms)", source.name, len(result.articles), (time.monotonic() - t0) * 1000)
        except asyncio.TimeoutError:
            result.error = f"timed out after {self.timeout:g}s"
            logger.warning("%s: %s", source.name, result.error)
        except aiohttp.ClientResponseError as e:
            result.error = f"HTTP {e.status}"
            logger.warning("%s: %s", source.name, result.error)
        except (aiohttp.ClientError, OSError, ValueError) as e:
            result.error = str(e) or e.__class__.__name__
            logger.warning("%s: %s", source.name, result.error)
        result.duration_seconds = time.monotonic() - t0
        return result

    def to_articles(self, body: str, source: FeedSource) -> List[Article]:
        """Parse a feed body into Articles; undated items get the epoch sentinel."""
        return [
            Article(
                title=item.title,
                link=item.link,
                pub_date=parse_date(item.pub_date) or EPOCH,
                description=item.description,
                source_name=source.name,
                source_url=source.html_url,
            )
            for item in self.parser.parse(body)
        ]


async def fetch_all(
    sources: Sequence[FeedSource],
    concurrency: int = DEFAULT_FEED_CONCURRENCY,
    timeout: float = DEFAULT_FEED_TIMEOUT,
) -> List[Article]:
    """Fetch all feeds with the default parser."""
    return await FeedFetcher(concurrency=concurrency, timeout=timeout).fetch_all(sources)
