"""Parser factory: pick the feed parser named in config (feeds.parser)."""

from __future__ import annotations

import logging

from ai_digest.connectors.base import BaseFeedParser
from ai_digest.connectors.rss import PatternFeedParser
from ai_digest.connectors.rss_feedparser import FeedparserFeedParser

logger = logging.getLogger(__name__)


def build_parser(name: str = "pattern") -> BaseFeedParser:
    """Return a parser for ``name`` (pattern | feedparser)."""
    kind = (name or "pattern").lower().strip()
    if kind == "pattern":
        return PatternFeedParser()
    if kind == "feedparser":
        return FeedparserFeedParser()
    # Default to the pattern parser so existing configs keep working
    logger.warning("Unknown feed parser %r, using pattern parser", name)
    return PatternFeedParser()
