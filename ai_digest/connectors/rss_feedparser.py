"""Feed parser backed by the feedparser library.

Selected with ``feeds.parser: feedparser``. Slower and stricter than the
pattern parser, but handles exotic encodings and RSS 0.9x/1.0 variants.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import feedparser

from ai_digest.connectors.base import MAX_DESCRIPTION_CHARS, BaseFeedParser, RawFeedItem
from ai_digest.connectors.rss import clean_text

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value or "")


def _entry_link(entry: Any) -> str:
    """Prefer the alternate link, then any link href, then the entry id."""
    links = entry.get("links") or []
    for link in links:
        if link.get("rel") == "alternate" and link.get("href"):
            return link["href"]
    for link in links:
        if link.get("href"):
            return link["href"]
    return _text(entry.get("link") or entry.get("id"))


def _entry_content(entry: Any) -> str:
    summary = entry.get("summary") or entry.get("description")
    if summary:
        return _text(summary)
    for block in entry.get("content") or []:
        if block.get("value"):
            return _text(block["value"])
    return ""


def _parse_entry(entry: Any) -> Optional[RawFeedItem]:
    """Convert a feedparser entry to a RawFeedItem."""
    title = clean_text(_text(entry.get("title")))
    link = clean_text(_entry_link(entry))
    if not title and not link:
        return None
    published = entry.get("published") or entry.get("updated") or entry.get("dc_date") or ""
    return RawFeedItem(
        title=title,
        link=link,
        pub_date=_text(published).strip(),
        description=clean_text(_entry_content(entry))[:MAX_DESCRIPTION_CHARS],
    )


class FeedparserFeedParser(BaseFeedParser):
    """Parse feed documents with feedparser."""

    def parse(self, xml_text: str) -> List[RawFeedItem]:
        if not xml_text:
            return []
        feed = feedparser.parse(xml_text)
        entries = getattr(feed, "entries", [])
        # Minor bozo with entries is fine; only a document with no entries is worth a log line
        if getattr(feed, "bozo", False) and not entries:
            logger.debug("feedparser could not read document: %s", getattr(feed, "bozo_exception", None))
        items: List[RawFeedItem] = []
        for entry in entries:
            item = _parse_entry(entry)
            if item:
                items.append(item)
        return items
