"""Tests for the click CLI."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import yaml
from click.testing import CliRunner

from ai_digest.digest.generator import DigestResult
from ai_digest.errors import AllBackendsFailedError, NoRecentArticlesError
from ai_digest.pipeline import cli as cli_module
from ai_digest.pipeline.cli import cli
from ai_digest.storage.models import Article, RunStats, ScoredArticle, ScoreResult, SummaryResult


# --- Fixtures ---

@pytest.fixture
def config_file(tmp_path):
    data = {
        "llm": {"apis": [{"base_url": "http://127.0.0.1:9/v1", "api_key": "k", "model": "m"}]},
        "feeds": {
            "sources": [
                {"name": "alpha.blog", "xmlUrl": "https://alpha.example/rss", "htmlUrl": "https://alpha.example"},
                {"name": "beta.blog", "xmlUrl": "https://beta.example/atom"},
            ]
        },
        "digest": {"output_dir": str(tmp_path / "out")},
        "cache": {"path": str(tmp_path / "cache" / "feeds.db")},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def make_result(lang: str = "zh") -> DigestResult:
    article = Article(
        title="Big news",
        link="https://alpha.example/big",
        pub_date=datetime.now(timezone.utc),
        description="desc",
        source_name="alpha.blog",
        source_url="https://alpha.example",
    )
    scored = ScoredArticle.build(article, ScoreResult(9, 8, 7, "ai-ml", ["LLM"]), SummaryResult("大新闻", "Summary text", "Reason"))
    stats = RunStats(total_feeds=2, success_feeds=1, total_articles=3, filtered_articles=1, hours=48, lang=lang)
    return DigestResult(articles=[scored], highlights="Highlights.", stats=stats)


class FakeGenerator:
    calls = []
    error = None

    def __init__(self, use_cache: bool) -> None:
        self.use_cache = use_cache

    @classmethod
    def from_config(cls, config, invoke, use_cache=True):
        return cls(use_cache)

    async def generate(self, sources, hours, top_n, lang, now=None, total_feeds=None):
        FakeGenerator.calls.append(
            {"sources": sources, "hours": hours, "top_n": top_n, "lang": lang,
             "use_cache": self.use_cache, "total_feeds": total_feeds}
        )
        if FakeGenerator.error:
            raise FakeGenerator.error
        return make_result(lang)


@pytest.fixture
def fake_generator(monkeypatch):
    FakeGenerator.calls = []
    FakeGenerator.error = None
    monkeypatch.setattr(cli_module, "DigestGenerator", FakeGenerator)
    return FakeGenerator


# --- Commands ---

class TestRunCommand:
    def test_writes_report(self, config_file, fake_generator, tmp_path):
        output = tmp_path / "report.md"
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "run", "--hours", "24", "--top-n", "5", "--lang", "en", "--output", str(output)]
        )
        assert result.exit_code == 0, result.output
        report = output.read_text(encoding="utf-8")
        assert "大新闻" in report
        assert "Today's Highlights" in report
        call = fake_generator.calls[0]
        assert (call["hours"], call["top_n"], call["lang"], call["use_cache"]) == (24, 5, "en", True)
        assert len(call["sources"]) == 2
        assert "Top 3 Preview" in result.output

    def test_default_output_path(self, config_file, fake_generator, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"])
        assert result.exit_code == 0, result.output
        written = list((tmp_path / "out").glob("digest-*.md"))
        assert len(written) == 1
        assert written[0].name == f"digest-{datetime.now(timezone.utc):%Y%m%d}.md"
        assert fake_generator.calls[0]["hours"] == 48

    def test_test_mode_fetches_first_feed_without_cache(self, config_file, fake_generator, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--test", "--output", str(tmp_path / "t.md")])
        assert result.exit_code == 0, result.output
        call = fake_generator.calls[0]
        assert [s.name for s in call["sources"]] == ["alpha.blog"]
        assert call["use_cache"] is False
        assert call["total_feeds"] == 2

    def test_explicit_zero_overrides_config(self, config_file, fake_generator, tmp_path):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "run", "--hours", "0", "--top-n", "0", "--output", str(tmp_path / "z.md")]
        )
        assert result.exit_code == 0, result.output
        call = fake_generator.calls[0]
        assert (call["hours"], call["top_n"]) == (0, 0)

    def test_no_cache_flag(self, config_file, fake_generator, tmp_path):
        CliRunner().invoke(cli, ["--config", str(config_file), "run", "--no-cache", "--output", str(tmp_path / "t.md")])
        assert fake_generator.calls[0]["use_cache"] is False

    def test_structural_error_exits_nonzero(self, config_file, fake_generator, tmp_path):
        fake_generator.error = NoRecentArticlesError(48)
        output = tmp_path / "never.md"
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--output", str(output)])
        assert result.exit_code == 1
        assert "--hours 168" in result.output
        assert not output.exists()

    def test_missing_config(self, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "run"])
        assert result.exit_code == 1
        assert "Config error" in result.output

    def test_invalid_lang_rejected(self, config_file):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--lang", "fr"])
        assert result.exit_code == 2


class TestOtherCommands:
    def test_sources(self, config_file):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "sources"])
        assert result.exit_code == 0, result.output
        assert "alpha.blog" in result.output
        assert "beta.blog" in result.output

    def test_check_llm_success(self, config_file, monkeypatch):
        async def fake_invoke(self, prompt):
            return f"echo: {prompt}"

        monkeypatch.setattr(cli_module.LLMClient, "invoke", fake_invoke)
        result = CliRunner().invoke(cli, ["--config", str(config_file), "check-llm", "ping"])
        assert result.exit_code == 0, result.output
        assert "echo: ping" in result.output

    def test_check_llm_failure(self, config_file, monkeypatch):
        async def fake_invoke(self, prompt):
            raise AllBackendsFailedError(1)

        monkeypatch.setattr(cli_module.LLMClient, "invoke", fake_invoke)
        result = CliRunner().invoke(cli, ["--config", str(config_file), "check-llm"])
        assert result.exit_code == 1
        assert "All 1 LLM API backends failed" in result.output

    def test_clear_cache(self, config_file, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "clear-cache"])
        assert result.exit_code == 0, result.output
        assert "Feed cache cleared" in result.output
        assert (tmp_path / "cache" / "feeds.db").exists()
