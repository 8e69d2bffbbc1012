"""CLI interface for the AI daily digest.

Usage:
    ai-digest run --hours 48 --top-n 15 --lang zh
    ai-digest run --test --debug
    ai-digest sources
    ai-digest check-llm "Say hello"
    ai-digest clear-cache
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ai_digest.config import SUPPORTED_LANGS, AppConfig, CacheConfig, load_config
from ai_digest.digest.generator import DigestGenerator, DigestResult
from ai_digest.digest.reporter import generate_report
from ai_digest.errors import ConfigError, DigestError
from ai_digest.llm.client import LLMClient
from ai_digest.storage.cache import FeedCache

console = Console()
log_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async function to completion."""
    return asyncio.run(coro)


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=log_console, rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # aiohttp and aiosqlite are noisy at DEBUG
    for name in ("aiohttp", "aiosqlite", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)


def fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    sys.exit(1)


def _load(ctx) -> AppConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}", soft_wrap=True)
        sys.exit(1)


@click.group()
@click.option("--config", "config_path", default=None, help="Config file path (YAML or JSON)")
@click.option("--debug", is_flag=True, help="Verbose logging, including prompts and raw LLM responses")
@click.pass_context
def cli(ctx, config_path: Optional[str], debug: bool):
    """AI daily digest: fetch feeds, score and summarize with an LLM, write a markdown report."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug
    setup_logging(debug)


@cli.command()
@click.option("--hours", type=int, default=None, help="Time range in hours (default from config, 48)")
@click.option("--top-n", "top_n", type=int, default=None, help="Number of articles to select (default 15)")
@click.option("--lang", type=click.Choice(SUPPORTED_LANGS), default=None, help="Summary language")
@click.option("--output", "output", type=click.Path(dir_okay=False), default=None, help="Report path")
@click.option("--test", "test_mode", is_flag=True, help="Test mode: only fetch the first feed")
@click.option("--no-cache", is_flag=True, help="Ignore and do not write the feed cache")
@click.pass_context
def run(
    ctx,
    hours: Optional[int],
    top_n: Optional[int],
    lang: Optional[str],
    output: Optional[str],
    test_mode: bool,
    no_cache: bool,
):
    """Run the full digest pipeline and write the report."""
    config = _load(ctx)
    if hours is None:
        hours = config.digest.hours
    if top_n is None:
        top_n = config.digest.top_n
    lang = lang or config.digest.lang
    now = datetime.now(timezone.utc)
    output_path = Path(output) if output else Path(config.digest.output_dir) / f"digest-{now:%Y%m%d}.md"

    sources = config.sources
    if test_mode:
        sources = sources[:1]
        console.print(f"[yellow]Test mode:[/yellow] only fetching {sources[0].name}")

    console.print("[bold]=== AI Daily Digest ===[/bold]")
    console.print(f"  Time range: {hours} hours")
    console.print(f"  Top N: {top_n}")
    console.print(f"  Language: {lang}")
    console.print(f"  Output: {output_path}")

    async def _run() -> DigestResult:
        client = LLMClient(config.llm)
        generator = DigestGenerator.from_config(config, client.invoke, use_cache=not (no_cache or test_mode))
        with console.status("[bold green]Generating digest (fetch, score, summarize)..."):
            return await generator.generate(
                sources, hours=hours, top_n=top_n, lang=lang, now=now, total_feeds=len(config.sources)
            )

    try:
        result = run_async(_run())
    except DigestError as e:
        fail(str(e))
        return

    report = generate_report(result.articles, result.highlights, result.stats, now=now)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(report, encoding="utf-8")

    stats = result.stats
    console.print(f"\n[green]Done![/green] Report: {output_path}")
    console.print(
        f"Stats: {stats.success_feeds} sources → {stats.total_articles} articles → "
        f"{stats.filtered_articles} recent → {len(result.articles)} selected"
    )
    if result.articles:
        console.print("\n[bold]Top 3 Preview:[/bold]")
        for i, a in enumerate(result.articles[:3], 1):
            console.print(f"  {i}. {a.display_title}", markup=False)
            console.print(f"     {a.summary[:80]}...", style="dim", markup=False)


@cli.command()
@click.pass_context
def sources(ctx):
    """List the configured feed sources."""
    config = _load(ctx)
    table = Table(title=f"Feed Sources ({len(config.sources)})")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", style="cyan")
    table.add_column("Feed URL")
    table.add_column("Site")
    for i, s in enumerate(config.sources, 1):
        table.add_row(str(i), s.name, s.xml_url, s.html_url)
    console.print(table)


@cli.command("check-llm")
@click.argument("prompt", default="Reply with the single word: ok")
@click.pass_context
def check_llm(ctx, prompt: str):
    """Send one prompt through the failover client and print the reply."""
    config = _load(ctx)
    client = LLMClient(config.llm)
    console.print(f"Testing {client.backend_count} backend(s)...")
    try:
        text = run_async(client.invoke(prompt))
    except DigestError as e:
        fail(str(e))
        return
    console.print(f"[green]Response ({len(text)} chars):[/green]")
    console.print(text, markup=False)


@cli.command("clear-cache")
@click.pass_context
def clear_cache(ctx):
    """Delete every cached feed fetch."""
    try:
        cache_config = load_config(ctx.obj["config_path"]).cache
    except ConfigError as e:
        logger.debug("No usable config (%s), clearing the default cache path", e)
        cache_config = CacheConfig()
    removed = run_async(FeedCache(cache_config.path, ttl_minutes=cache_config.ttl_minutes).clear())
    console.print(f"[green]Feed cache cleared[/green] ({removed} entries, {cache_config.path})")


def main():
    cli()


if __name__ == "__main__":
    main()
