"""Data models for the digest pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Sentinel for feed items whose date could not be parsed; recency filtering drops them.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class CategoryMeta:
    emoji: str
    label_zh: str
    label_en: str

    def label(self, lang: str = "zh") -> str:
        return self.label_en if lang == "en" else self.label_zh


CATEGORY_META: Dict[str, CategoryMeta] = {
    "ai-ml": CategoryMeta("🤖", "AI / ML", "AI / ML"),
    "security": CategoryMeta("🔒", "安全", "Security"),
    "engineering": CategoryMeta("⚙️", "工程", "Engineering"),
    "tools": CategoryMeta("🛠", "工具 / 开源", "Tools / Open Source"),
    "opinion": CategoryMeta("💡", "观点 / 杂谈", "Opinion"),
    "other": CategoryMeta("📝", "其他", "Other"),
}

VALID_CATEGORIES = frozenset(CATEGORY_META)
DEFAULT_CATEGORY = "other"


@dataclass(frozen=True)
class FeedSource:
    """A named RSS/Atom endpoint plus its human-facing page URL."""

    name: str
    xml_url: str
    html_url: str = ""

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> FeedSource:
        """Create from a feed list entry (``xmlUrl``/``htmlUrl`` or snake_case keys)."""
        xml_url = cfg.get("xmlUrl") or cfg.get("xml_url") or cfg.get("url") or ""
        html_url = cfg.get("htmlUrl") or cfg.get("html_url") or ""
        name = cfg.get("name") or xml_url
        return cls(name=str(name), xml_url=str(xml_url), html_url=str(html_url))


@dataclass(frozen=True)
class Article:
    """A single feed entry."""

    title: str
    link: str
    pub_date: datetime
    description: str
    source_name: str
    source_url: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["pub_date"] = self.pub_date.isoformat()
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Article:
        pub = datetime.fromisoformat(d["pub_date"])
        if pub.tzinfo is None:
            pub = pub.replace(tzinfo=timezone.utc)
        return cls(
            title=d.get("title", ""),
            link=d.get("link", ""),
            pub_date=pub,
            description=d.get("description", ""),
            source_name=d.get("source_name", ""),
            source_url=d.get("source_url", ""),
        )


@dataclass(frozen=True)
class ScoreResult:
    """Normalized LLM score for one article (each factor in [1, 10])."""

    relevance: int
    quality: int
    timeliness: int
    category: str = DEFAULT_CATEGORY
    keywords: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.relevance + self.quality + self.timeliness

    @classmethod
    def neutral(cls) -> ScoreResult:
        return cls(relevance=5, quality=5, timeliness=5, category=DEFAULT_CATEGORY, keywords=[])


@dataclass(frozen=True)
class SummaryResult:
    title_zh: str = ""
    summary: str = ""
    reason: str = ""


@dataclass(frozen=True)
class ScoredArticle:
    """An article with its score breakdown and summary, ready for the report."""

    title: str
    link: str
    pub_date: datetime
    description: str
    source_name: str
    source_url: str
    relevance: int
    quality: int
    timeliness: int
    category: str
    keywords: List[str]
    title_zh: str
    summary: str
    reason: str

    @property
    def score(self) -> int:
        return self.relevance + self.quality + self.timeliness

    @property
    def display_title(self) -> str:
        return self.title_zh or self.title

    @classmethod
    def build(cls, article: Article, score: ScoreResult, summary: SummaryResult) -> ScoredArticle:
        return cls(
            title=article.title,
            link=article.link,
            pub_date=article.pub_date,
            description=article.description,
            source_name=article.source_name,
            source_url=article.source_url,
            relevance=score.relevance,
            quality=score.quality,
            timeliness=score.timeliness,
            category=score.category,
            keywords=list(score.keywords),
            title_zh=summary.title_zh,
            summary=summary.summary,
            reason=summary.reason,
        )


@dataclass
class FeedResult:
    """Outcome of fetching a single feed source."""

    source: FeedSource
    articles: List[Article] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.articles)


@dataclass
class FetchSummary:
    """Aggregated outcome of fetching all feed sources."""

    results: List[FeedResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def articles(self) -> List[Article]:
        out: List[Article] = []
        for r in self.results:
            out.extend(r.articles)
        return out

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


@dataclass
class RunStats:
    """Run statistics shown in the report header table."""

    total_feeds: int
    success_feeds: int
    total_articles: int
    filtered_articles: int
    hours: int
    lang: str = "zh"
