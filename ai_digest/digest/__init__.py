"""Digest stages: batched scoring and summarization, driver and markdown report."""

from ai_digest.digest.batching import Batch, IndexedItem, partition, run_batched
from ai_digest.digest.generator import DigestGenerator, DigestResult, filter_recent, select_top
from ai_digest.digest.reporter import generate_report, humanize_time
from ai_digest.digest.scorer import ArticleScorer, normalize_score, score_articles
from ai_digest.digest.summarizer import ArticleSummarizer, generate_highlights, summarize_articles

__all__ = [
    "ArticleScorer",
    "ArticleSummarizer",
    "Batch",
    "DigestGenerator",
    "DigestResult",
    "IndexedItem",
    "filter_recent",
    "generate_highlights",
    "generate_report",
    "humanize_time",
    "normalize_score",
    "partition",
    "run_batched",
    "score_articles",
    "select_top",
    "summarize_articles",
]
