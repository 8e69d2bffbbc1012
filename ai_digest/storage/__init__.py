"""Data models and the on-disk feed cache."""

from ai_digest.storage.cache import FeedCache
from ai_digest.storage.models import (
    CATEGORY_META,
    VALID_CATEGORIES,
    Article,
    FeedResult,
    FeedSource,
    FetchSummary,
    RunStats,
    ScoredArticle,
    ScoreResult,
    SummaryResult,
)

__all__ = [
    "FeedCache",
    "CATEGORY_META",
    "VALID_CATEGORIES",
    "Article",
    "FeedResult",
    "FeedSource",
    "FetchSummary",
    "RunStats",
    "ScoredArticle",
    "ScoreResult",
    "SummaryResult",
]
