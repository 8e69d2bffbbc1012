"""Feed connectors: parsers and the concurrent fetcher.

Supported parsers: pattern (default, regex based), feedparser.
"""

from ai_digest.connectors.base import BaseFeedParser, RawFeedItem
from ai_digest.connectors.factory import build_parser
from ai_digest.connectors.fetcher import FeedFetcher, fetch_all
from ai_digest.connectors.rss import PatternFeedParser, parse_date, parse_feed_items
from ai_digest.connectors.rss_feedparser import FeedparserFeedParser

__all__ = [
    "BaseFeedParser",
    "RawFeedItem",
    "build_parser",
    "FeedFetcher",
    "fetch_all",
    "PatternFeedParser",
    "FeedparserFeedParser",
    "parse_date",
    "parse_feed_items",
]
