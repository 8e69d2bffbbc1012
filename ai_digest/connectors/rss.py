"""Pattern-based RSS/Atom parser.

Feeds in the wild are frequently malformed (unescaped ampersands, truncated
bodies, mixed namespaces), so items are located with permissive regular
expressions instead of an XML parser. Nothing here raises on bad input: a
missing field is an empty string and an unreadable document yields no items.
"""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, Iterator, List, Optional, Tuple

from dateutil import parser as dateparser

from ai_digest.connectors.base import MAX_DESCRIPTION_CHARS, BaseFeedParser, RawFeedItem

logger = logging.getLogger(__name__)

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"

_PREFIX = r"(?:[\w.-]+:)?"
_FLAGS = re.IGNORECASE | re.DOTALL

_ATOM_ROOT_RE = re.compile(
    rf"<{_PREFIX}feed\b[^>]*?xmlns(?::[\w.-]+)?\s*=\s*[\"']{re.escape(ATOM_NAMESPACE)}[\"']",
    re.IGNORECASE,
)
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_HTML_TAG_RE = re.compile(r"</?[a-zA-Z!][^>]*>")
_WS_RE = re.compile(r"\s+")
_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_RFC822_RE = re.compile(r"(\d{1,2})\s+([A-Za-z]{3})\s+(\d{4})\s+(\d{2}):(\d{2}):(\d{2})")


# ---------------------------------------------------------------------------
# Low-level extraction
# ---------------------------------------------------------------------------


@lru_cache(maxsize=64)
def _element_patterns(tag: str) -> Tuple[re.Pattern, ...]:
    """Patterns for ``<tag ...>body</tag>``: exact name first, then any namespace prefix.

    Self-closing tags never match (the ``(?<!/)`` guard), so an empty
    ``<atom:link .../>`` cannot swallow the text up to a later ``</link>``.
    """
    name = re.escape(tag)
    exact = re.compile(rf"<{name}(?:\s[^>]*)?(?<!/)>(.*?)</{name}\s*>", _FLAGS)
    if ":" in tag:
        return (exact,)
    prefixed = re.compile(rf"<{_PREFIX}{name}(?:\s[^>]*)?(?<!/)>(.*?)</{_PREFIX}{name}\s*>", _FLAGS)
    return (exact, prefixed)


@lru_cache(maxsize=16)
def _open_tag_pattern(tag: str) -> re.Pattern:
    return re.compile(rf"<{_PREFIX}{re.escape(tag)}(?=[\s/>])([^>]*)>", re.IGNORECASE)


def unwrap_cdata(text: str) -> str:
    return _CDATA_RE.sub(lambda m: m.group(1), text)


def clean_text(raw: str) -> str:
    """Unwrap CDATA, strip markup, decode entities and collapse whitespace.

    Markup is stripped before decoding, so entity-escaped text such as
    ``&lt;div&gt;`` survives as a literal ``<div>``.
    """
    if not raw:
        return ""
    text = unwrap_cdata(raw)
    text = _HTML_TAG_RE.sub(" ", text)
    text = html.unescape(text)
    return _WS_RE.sub(" ", text).strip()


def get_tag_content(xml: str, tag: str) -> str:
    """Return the raw (CDATA-unwrapped) body of the first non-empty ``tag`` element."""
    for pattern in _element_patterns(tag):
        m = pattern.search(xml)
        if m and m.group(1).strip():
            return unwrap_cdata(m.group(1)).strip()
    return ""


def first_tag_content(xml: str, *tags: str) -> str:
    for tag in tags:
        value = get_tag_content(xml, tag)
        if value:
            return value
    return ""


def iter_tag_attrs(xml: str, tag: str) -> Iterator[Dict[str, str]]:
    """Yield the attributes (lower-cased names) of every ``tag`` start tag."""
    for m in _open_tag_pattern(tag).finditer(xml):
        attrs: Dict[str, str] = {}
        for am in _ATTR_RE.finditer(m.group(1)):
            value = am.group(2) if am.group(2) is not None else am.group(3)
            attrs[am.group(1).lower()] = value
        yield attrs


def iter_blocks(xml: str, tag: str) -> Iterator[str]:
    for m in _element_patterns(tag)[-1].finditer(xml):
        yield m.group(1)


def is_atom(xml: str) -> bool:
    """Atom when the root ``feed`` element binds the Atom namespace.

    Documents with ``<entry>`` blocks and no ``<item>`` are also treated as Atom
    (some producers omit the namespace declaration).
    """
    if _ATOM_ROOT_RE.search(xml):
        return True
    return bool(_open_tag_pattern("entry").search(xml)) and not _open_tag_pattern("item").search(xml)


# ---------------------------------------------------------------------------
# Item extraction
# ---------------------------------------------------------------------------


def _atom_link(entry_xml: str) -> str:
    links = list(iter_tag_attrs(entry_xml, "link"))
    for attrs in links:
        if attrs.get("rel", "").lower() == "alternate" and attrs.get("href"):
            return attrs["href"]
    for attrs in links:
        if attrs.get("href"):
            return attrs["href"]
    return ""


def _make_item(title: str, link: str, pub_date: str, description: str) -> Optional[RawFeedItem]:
    title = clean_text(title)
    link = clean_text(link)
    if not title and not link:
        return None
    return RawFeedItem(
        title=title,
        link=link,
        pub_date=clean_text(pub_date),
        description=clean_text(description)[:MAX_DESCRIPTION_CHARS],
    )


def _parse_atom(xml: str) -> List[RawFeedItem]:
    items: List[RawFeedItem] = []
    for entry in iter_blocks(xml, "entry"):
        item = _make_item(
            title=get_tag_content(entry, "title"),
            link=_atom_link(entry),
            pub_date=first_tag_content(entry, "published", "updated"),
            description=first_tag_content(entry, "summary", "content"),
        )
        if item:
            items.append(item)
    return items


def _parse_rss(xml: str) -> List[RawFeedItem]:
    items: List[RawFeedItem] = []
    for block in iter_blocks(xml, "item"):
        item = _make_item(
            title=get_tag_content(block, "title"),
            link=first_tag_content(block, "link", "guid"),
            pub_date=first_tag_content(block, "pubDate", "dc:date", "date"),
            description=first_tag_content(block, "description", "content:encoded"),
        )
        if item:
            items.append(item)
    return items


def parse_feed_items(xml_text: str) -> List[RawFeedItem]:
    """Extract title/link/date/description records from an RSS 2.0 or Atom document."""
    if not xml_text:
        return []
    if is_atom(xml_text):
        return _parse_atom(xml_text)
    return _parse_rss(xml_text)


def parse_date(raw: str) -> Optional[datetime]:
    """Parse a feed date string into an aware UTC datetime, or None.

    Tries a direct parse first; failing that, pulls an RFC-822 shaped
    ``D Mon YYYY HH:MM:SS`` out of the string (garbage around it, odd zone
    names) and parses just that part as UTC.
    """
    raw = (raw or "").strip()
    if not raw:
        return None

    dt: Optional[datetime]
    try:
        dt = dateparser.parse(raw)
    except (ValueError, OverflowError, TypeError):
        dt = None

    if dt is None:
        m = _RFC822_RE.search(raw)
        if m:
            day, mon, year, hh, mm, ss = m.groups()
            try:
                dt = datetime.strptime(f"{day} {mon.title()} {year} {hh}:{mm}:{ss}", "%d %b %Y %H:%M:%S")
            except ValueError:
                dt = None

    if dt is None:
        logger.debug("Unparseable feed date: %r", raw)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        logger.debug("Feed date out of range: %r", raw)
        return None


class PatternFeedParser(BaseFeedParser):
    """Default parser: regex extraction, tolerant of malformed XML."""

    def parse(self, xml_text: str) -> List[RawFeedItem]:
        return parse_feed_items(xml_text)
