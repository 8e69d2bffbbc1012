"""Tests for the feed parsers: RSS 2.0, Atom, text cleanup and date parsing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ai_digest.connectors.base import MAX_DESCRIPTION_CHARS
from ai_digest.connectors.factory import build_parser
from ai_digest.connectors.rss import (
    PatternFeedParser,
    clean_text,
    get_tag_content,
    is_atom,
    parse_date,
    parse_feed_items,
)
from ai_digest.connectors.rss_feedparser import FeedparserFeedParser


# --- Fixtures ---

RSS_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom" xmlns:content="http://purl.org/rss/1.0/modules/content/">
<channel>
  <title>Example Blog</title>
  <link>https://example.com</link>
  <atom:link href="https://example.com/feed.xml" rel="self" type="application/rss+xml"/>
  <item>
    <title><![CDATA[Hello & World]]></title>
    <atom:link href="https://example.com/self" rel="self"/>
    <link>https://example.com/hello</link>
    <pubDate>Mon, 02 Jan 2006 15:04:05 GMT</pubDate>
    <description><![CDATA[<p>First <b>post</b> body</p>]]></description>
  </item>
  <item>
    <title>Second post</title>
    <guid>https://example.com/second</guid>
    <content:encoded><![CDATA[<p>Full   content
    here</p>]]></content:encoded>
  </item>
</channel>
</rss>
"""

ATOM_DOC = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Blog</title>
  <link href="https://atom.example.com/" rel="alternate"/>
  <entry>
    <title>Entry one</title>
    <link href="https://atom.example.com/feed" rel="self"/>
    <link href="https://atom.example.com/one" rel="alternate"/>
    <published>2024-03-01T10:00:00+02:00</published>
    <updated>2024-03-02T10:00:00Z</updated>
    <summary type="html"><![CDATA[<p>Summary one</p>]]></summary>
  </entry>
  <entry>
    <title type="html">Entry two</title>
    <link href="https://atom.example.com/two"/>
    <updated>2024-03-03T08:30:00Z</updated>
    <content type="html">Content two</content>
  </entry>
</feed>
"""


# --- Text helpers ---

class TestCleanText:
    def test_unwraps_cdata(self):
        assert clean_text("<![CDATA[Hello & World]]>") == "Hello & World"

    def test_strips_markup(self):
        assert clean_text("<p>Hi <em>there</em></p>") == "Hi there"

    def test_escaped_markup_is_kept_as_text(self):
        assert clean_text("Why &lt;template&gt; beats &lt;div&gt;") == "Why <template> beats <div>"

    def test_escaped_markup_in_title_survives_parsing(self):
        xml = (
            "<rss><channel><item>"
            "<title>Why &lt;template&gt; beats &lt;div&gt;</title>"
            "<link>https://example.com/1</link>"
            "</item></channel></rss>"
        )
        assert parse_feed_items(xml)[0].title == "Why <template> beats <div>"

    def test_decodes_entities_and_collapses_whitespace(self):
        assert clean_text("  a &amp;\n\n  b&#39;s  ") == "a & b's"

    def test_empty(self):
        assert clean_text("") == ""

    def test_self_closing_tag_does_not_swallow_text(self):
        xml = '<atom:link href="x" rel="self"/><link>https://real.example</link>'
        assert get_tag_content(xml, "link") == "https://real.example"


# --- RSS ---

class TestRSSParsing:
    def test_parses_items(self):
        items = parse_feed_items(RSS_DOC)
        assert len(items) == 2

    def test_cdata_title_and_link(self):
        first = parse_feed_items(RSS_DOC)[0]
        assert first.title == "Hello & World"
        assert first.link == "https://example.com/hello"
        assert first.pub_date == "Mon, 02 Jan 2006 15:04:05 GMT"
        assert first.description == "First post body"

    def test_guid_and_content_encoded_fallbacks(self):
        second = parse_feed_items(RSS_DOC)[1]
        assert second.link == "https://example.com/second"
        assert second.description == "Full content here"
        assert second.pub_date == ""

    def test_item_without_title_and_link_is_dropped(self):
        doc = "<rss><channel><item><description>orphan</description></item></channel></rss>"
        assert parse_feed_items(doc) == []

    def test_item_with_only_link_is_kept(self):
        doc = "<rss><channel><item><link>https://x.example/a</link></item></channel></rss>"
        items = parse_feed_items(doc)
        assert len(items) == 1
        assert items[0].title == ""
        assert items[0].link == "https://x.example/a"

    def test_description_truncated(self):
        body = "word " * 300
        doc = f"<rss><channel><item><title>T</title><description>{body}</description></item></channel></rss>"
        item = parse_feed_items(doc)[0]
        assert len(item.description) == MAX_DESCRIPTION_CHARS

    def test_malformed_document_yields_nothing(self):
        assert parse_feed_items("<html><body>not a feed") == []
        assert parse_feed_items("") == []

    def test_unescaped_ampersand_tolerated(self):
        doc = "<rss><channel><item><title>Q&A session</title><link>https://e.x/q?a=1&b=2</link></item></channel></rss>"
        item = parse_feed_items(doc)[0]
        assert item.title == "Q&A session"
        assert item.link == "https://e.x/q?a=1&b=2"


# --- Atom ---

class TestAtomParsing:
    def test_detects_atom(self):
        assert is_atom(ATOM_DOC)
        assert not is_atom(RSS_DOC)

    def test_entry_without_namespace_declaration(self):
        doc = "<feed><entry><title>A</title><link href='https://a.example'/></entry></feed>"
        assert is_atom(doc)
        assert parse_feed_items(doc)[0].link == "https://a.example"

    def test_parses_entries(self):
        items = parse_feed_items(ATOM_DOC)
        assert [i.title for i in items] == ["Entry one", "Entry two"]

    def test_prefers_alternate_link(self):
        first, second = parse_feed_items(ATOM_DOC)
        assert first.link == "https://atom.example.com/one"
        assert second.link == "https://atom.example.com/two"

    def test_published_then_updated(self):
        first, second = parse_feed_items(ATOM_DOC)
        assert first.pub_date == "2024-03-01T10:00:00+02:00"
        assert second.pub_date == "2024-03-03T08:30:00Z"

    def test_summary_then_content(self):
        first, second = parse_feed_items(ATOM_DOC)
        assert first.description == "Summary one"
        assert second.description == "Content two"

    def test_prefixed_atom(self):
        doc = (
            '<atom:feed xmlns:atom="http://www.w3.org/2005/Atom">'
            "<atom:entry><atom:title>Prefixed</atom:title>"
            '<atom:link href="https://p.example/1"/></atom:entry></atom:feed>'
        )
        items = parse_feed_items(doc)
        assert len(items) == 1
        assert items[0].title == "Prefixed"
        assert items[0].link == "https://p.example/1"


# --- Dates ---

class TestParseDate:
    def test_rfc822(self):
        assert parse_date("Mon, 02 Jan 2006 15:04:05 GMT") == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)

    def test_iso_with_offset_converted_to_utc(self):
        assert parse_date("2024-03-01T10:00:00+02:00") == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        dt = parse_date("2024-01-01 12:00:00")
        assert dt == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_rfc822_fragment_inside_noise(self):
        dt = parse_date("Published: 02 Jan 2006 15:04:05 somewhere")
        assert dt == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)

    def test_out_of_range_after_utc_conversion(self):
        assert parse_date("0001-01-01T00:00:00+05:00") is None

    @pytest.mark.parametrize("raw", ["", "   ", "not a date"])
    def test_unparseable(self, raw):
        assert parse_date(raw) is None


# --- Parser backends ---

class TestParserBackends:
    def test_factory(self):
        assert isinstance(build_parser("pattern"), PatternFeedParser)
        assert isinstance(build_parser("FeedParser"), FeedparserFeedParser)
        assert isinstance(build_parser("nonsense"), PatternFeedParser)

    def test_feedparser_backend_reads_atom(self):
        items = FeedparserFeedParser().parse(ATOM_DOC)
        assert [i.title for i in items] == ["Entry one", "Entry two"]
        assert items[0].link == "https://atom.example.com/one"
        assert items[0].description == "Summary one"

    def test_feedparser_backend_reads_rss(self):
        items = FeedparserFeedParser().parse(RSS_DOC)
        assert items[0].title == "Hello & World"
        assert items[0].link == "https://example.com/hello"
        assert parse_date(items[0].pub_date) == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
