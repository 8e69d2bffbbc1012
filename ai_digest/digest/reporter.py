"""Markdown rendering of a finished digest."""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Sequence

from ai_digest.storage.models import CATEGORY_META, DEFAULT_CATEGORY, RunStats, ScoredArticle

MEDALS = ("🥇", "🥈", "🥉")
BAR_CHART_KEYWORDS = 12
ASCII_CHART_KEYWORDS = 10
ASCII_BAR_WIDTH = 20
TAG_CLOUD_KEYWORDS = 20

LABELS = {
    "zh": {
        "title": "📰 AI 博客每日精选",
        "subtitle": "来自 {feeds} 个顶级技术博客，AI 精选 Top {count}",
        "highlights": "📝 今日看点",
        "must_read": "🏆 今日必读",
        "why_read": "为什么值得读",
        "overview": "📊 数据概览",
        "stats_header": "| 扫描源 | 抓取文章 | 时间范围 | 精选 |",
        "articles_unit": "篇",
        "categories": "分类分布",
        "category_chart": "文章分类分布",
        "keywords": "高频关键词",
        "occurrences": "出现次数",
        "ascii_chart": "📈 纯文本关键词图（终端友好）",
        "tags": "🏷️ 话题标签",
        "footer": "生成于 {when} | 扫描 {feeds} 源 → 获取 {total} 篇 → 精选 {count} 篇",
        "minutes_ago": "{n} 分钟前",
        "hours_ago": "{n} 小时前",
        "days_ago": "{n} 天前",
    },
    "en": {
        "title": "📰 AI Blog Daily Digest",
        "subtitle": "Top {count} picks from {feeds} leading tech blogs, curated by AI",
        "highlights": "📝 Today's Highlights",
        "must_read": "🏆 Must Read",
        "why_read": "Why read",
        "overview": "📊 Overview",
        "stats_header": "| Sources | Articles | Time Range | Selected |",
        "articles_unit": "articles",
        "categories": "Categories",
        "category_chart": "Article Categories",
        "keywords": "Top Keywords",
        "occurrences": "Occurrences",
        "ascii_chart": "📈 Plain-text keyword chart (terminal friendly)",
        "tags": "🏷️ Topics",
        "footer": "Generated {when} | {feeds} sources → {total} articles → {count} selected",
        "minutes_ago": "{n} min ago",
        "hours_ago": "{n}h ago",
        "days_ago": "{n}d ago",
    },
}


def _labels(lang: str) -> dict[str, str]:
    return LABELS.get(lang, LABELS["en"])


def humanize_time(dt: datetime, now: Optional[datetime] = None, lang: str = "zh") -> str:
    """Relative age (minutes, hours or days ago); ISO date once older than a week."""
    now = now or datetime.now(timezone.utc)
    seconds = max(0.0, (now - dt).total_seconds())
    labels = _labels(lang)
    minutes = int(seconds // 60)
    if minutes < 60:
        return labels["minutes_ago"].format(n=minutes)
    hours = int(seconds // 3600)
    if hours < 24:
        return labels["hours_ago"].format(n=hours)
    days = int(seconds // 86400)
    if days < 7:
        return labels["days_ago"].format(n=days)
    return dt.date().isoformat()


def count_keywords(articles: Sequence[ScoredArticle]) -> Counter:
    """Case-insensitive keyword frequencies, first-seen order among ties."""
    counts: Counter = Counter()
    for a in articles:
        for kw in a.keywords:
            counts[kw.lower()] += 1
    return counts


def _category_label(category: str, lang: str) -> str:
    meta = CATEGORY_META.get(category) or CATEGORY_META[DEFAULT_CATEGORY]
    return f"{meta.emoji} {meta.label(lang)}"


def _mermaid_text(text: str) -> str:
    """Make ``text`` safe inside a double-quoted mermaid string."""
    return text.replace('"', "'").replace("\n", " ")


def category_pie_chart(articles: Sequence[ScoredArticle], lang: str = "zh") -> str:
    counts = Counter(a.category for a in articles)
    if not counts:
        return ""
    lines = ["```mermaid", "pie showData", f'    title "{_labels(lang)["category_chart"]}"']
    lines += [f'    "{_mermaid_text(_category_label(cat, lang))}" : {n}' for cat, n in counts.most_common()]
    lines.append("```")
    return "\n".join(lines) + "\n"


def keyword_bar_chart(articles: Sequence[ScoredArticle], lang: str = "zh") -> str:
    top = count_keywords(articles).most_common(BAR_CHART_KEYWORDS)
    if not top:
        return ""
    labels = _labels(lang)
    names = ", ".join(f'"{_mermaid_text(k)}"' for k, _ in top)
    values = ", ".join(str(v) for _, v in top)
    return (
        "```mermaid\n"
        "xychart-beta horizontal\n"
        f'    title "{labels["keywords"]}"\n'
        f"    x-axis [{names}]\n"
        f'    y-axis "{labels["occurrences"]}" 0 --> {top[0][1] + 2}\n'
        f"    bar [{values}]\n"
        "```\n"
    )


def ascii_bar_chart(articles: Sequence[ScoredArticle]) -> str:
    top = count_keywords(articles).most_common(ASCII_CHART_KEYWORDS)
    if not top:
        return ""
    max_val = top[0][1]
    width = max(len(k) for k, _ in top)
    lines = ["```"]
    for label, value in top:
        filled = max(1, math.floor(value / max_val * ASCII_BAR_WIDTH + 0.5))
        bar = "█" * filled + "░" * (ASCII_BAR_WIDTH - filled)
        lines.append(f"{label.ljust(width)} │ {bar} {value}")
    lines.append("```")
    return "\n".join(lines) + "\n"


def tag_cloud(articles: Sequence[ScoredArticle]) -> str:
    top = count_keywords(articles).most_common(TAG_CLOUD_KEYWORDS)
    return " · ".join(
        f"**{word}**({n})" if i < 3 else f"{word}({n})"
        for i, (word, n) in enumerate(top)
    )


def group_by_category(articles: Sequence[ScoredArticle]) -> list[tuple[str, list[ScoredArticle]]]:
    """Category groups, largest first; ties keep first-appearance order."""
    groups: dict[str, list[ScoredArticle]] = {}
    for a in articles:
        groups.setdefault(a.category, []).append(a)
    return sorted(groups.items(), key=lambda kv: len(kv[1]), reverse=True)


def generate_report(
    articles: Sequence[ScoredArticle],
    highlights: str,
    stats: RunStats,
    now: Optional[datetime] = None,
) -> str:
    """Render the digest as a markdown document."""
    now = now or datetime.now(timezone.utc)
    lang = stats.lang
    labels = _labels(lang)
    date_str = now.date().isoformat()
    out: list[str] = []

    out.append(f"# {labels['title']} — {date_str}\n\n")
    out.append(f"> {labels['subtitle'].format(feeds=stats.total_feeds, count=len(articles))}\n\n")

    if highlights:
        out.append(f"## {labels['highlights']}\n\n{highlights}\n\n---\n\n")

    if len(articles) >= 3:
        out.append(f"## {labels['must_read']}\n\n")
        for medal, a in zip(MEDALS, articles):
            out.append(f"{medal} **{a.display_title}**\n\n")
            out.append(
                f"[{a.title}]({a.link}) — {a.source_name} · {humanize_time(a.pub_date, now, lang)}"
                f" · {_category_label(a.category, lang)}\n\n"
            )
            out.append(f"> {a.summary}\n\n")
            if a.reason:
                out.append(f"💡 **{labels['why_read']}**: {a.reason}\n\n")
            if a.keywords:
                out.append(f"🏷️ {', '.join(a.keywords)}\n\n")
        out.append("---\n\n")

    unit = labels["articles_unit"]
    out.append(f"## {labels['overview']}\n\n")
    out.append(f"{labels['stats_header']}\n|:---:|:---:|:---:|:---:|\n")
    out.append(
        f"| {stats.success_feeds}/{stats.total_feeds} "
        f"| {stats.total_articles} {unit} → {stats.filtered_articles} {unit} "
        f"| {stats.hours}h | **{len(articles)} {unit}** |\n\n"
    )

    pie = category_pie_chart(articles, lang)
    if pie:
        out.append(f"### {labels['categories']}\n\n{pie}\n")
    bars = keyword_bar_chart(articles, lang)
    if bars:
        out.append(f"### {labels['keywords']}\n\n{bars}\n")
    ascii_chart = ascii_bar_chart(articles)
    if ascii_chart:
        out.append(f"<details>\n<summary>{labels['ascii_chart']}</summary>\n\n{ascii_chart}\n</details>\n\n")
    cloud = tag_cloud(articles)
    if cloud:
        out.append(f"### {labels['tags']}\n\n{cloud}\n\n")
    out.append("---\n\n")

    index = 0
    for category, group in group_by_category(articles):
        out.append(f"## {_category_label(category, lang)}\n\n")
        for a in group:
            index += 1
            out.append(f"### {index}. {a.display_title}\n\n")
            out.append(
                f"[{a.title}]({a.link}) — **{a.source_name}** · "
                f"{humanize_time(a.pub_date, now, lang)} · ⭐ {a.score}/30\n\n"
            )
            out.append(f"> {a.summary}\n\n")
            if a.keywords:
                out.append(f"🏷️ {', '.join(a.keywords)}\n\n")
            out.append("---\n\n")

    when = now.strftime("%Y-%m-%d %H:%M")
    out.append(
        "*"
        + labels["footer"].format(when=when, feeds=stats.success_feeds, total=stats.total_articles, count=len(articles))
        + "*\n"
    )
    return "".join(out)
