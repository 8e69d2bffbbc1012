"""Tests for configuration loading and validation."""

from __future__ import annotations

import json

import pytest
import yaml

from ai_digest.config import (
    CONFIG_ENV_VAR,
    DEFAULT_BATCH_SIZE,
    ApiConfig,
    AppConfig,
    candidate_paths,
    load_config,
)
from ai_digest.errors import ConfigError


# --- Fixtures ---

def base_config(**overrides):
    config = {
        "llm": {"apis": [{"base_url": "https://api.example.com/v1", "api_key": "${TEST_DIGEST_KEY}", "model": "m1"}]},
        "feeds": {"sources": [{"name": "blog", "xmlUrl": "https://blog.example/rss", "htmlUrl": "https://blog.example"}]},
    }
    config.update(overrides)
    return config


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="config.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
        return path

    return _write


class TestLoadConfig:
    def test_defaults_and_env_expansion(self, write_config, monkeypatch):
        monkeypatch.setenv("TEST_DIGEST_KEY", "sk-secret")
        config = load_config(str(write_config(base_config())))

        assert config.llm.apis == [ApiConfig("https://api.example.com/v1", "sk-secret", "m1")]
        assert config.digest.batch_size == DEFAULT_BATCH_SIZE
        assert config.digest.lang == "zh"
        assert config.feeds.concurrency == 10
        assert config.cache.enabled is True
        assert config.sources[0].name == "blog"
        assert config.sources[0].html_url == "https://blog.example"

    def test_sources_file_relative_to_config(self, tmp_path, write_config):
        (tmp_path / "feeds").mkdir()
        (tmp_path / "feeds" / "list.json").write_text(
            json.dumps([{"name": "a", "xmlUrl": "https://a.example/feed"}, {"name": "no-url"}]), encoding="utf-8"
        )
        data = base_config(feeds={"sources_file": "feeds/list.json", "parser": "FeedParser"})
        config = load_config(str(write_config(data)))
        assert [s.name for s in config.sources] == ["a"]
        assert config.feeds.parser == "feedparser"

    def test_json_config(self, write_config, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(base_config(digest={"lang": "en", "top_n": 5})), encoding="utf-8")
        config = load_config(str(path))
        assert config.digest.lang == "en"
        assert config.digest.top_n == 5

    def test_env_var_lookup(self, write_config, monkeypatch, tmp_path):
        path = write_config(base_config(), name="custom.yaml")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        monkeypatch.chdir(tmp_path)
        assert load_config().path == path

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_nothing_found_lists_paths(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        with pytest.raises(ConfigError) as exc_info:
            load_config()
        assert "config.yaml" in str(exc_info.value)

    def test_candidate_order(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_ENV_VAR, "/etc/from-env.yaml")
        monkeypatch.chdir(tmp_path)
        paths = [str(p) for p in candidate_paths("explicit.yaml")]
        assert paths[0] == "explicit.yaml"
        assert paths[1] == "/etc/from-env.yaml"
        assert paths[2].endswith("config.yaml") and paths[3].endswith("config.json")


class TestValidation:
    def test_no_apis(self):
        with pytest.raises(ConfigError):
            AppConfig.from_dict(base_config(llm={"apis": []}))

    def test_api_without_model(self):
        with pytest.raises(ConfigError):
            AppConfig.from_dict(base_config(llm={"apis": [{"base_url": "https://x"}]}))

    def test_bad_lang(self):
        with pytest.raises(ConfigError):
            AppConfig.from_dict(base_config(digest={"lang": "fr"}))

    def test_empty_sources(self):
        with pytest.raises(ConfigError):
            AppConfig.from_dict(base_config(feeds={"sources": []}))

    def test_missing_sources_file(self, tmp_path):
        with pytest.raises(ConfigError):
            AppConfig.from_dict(base_config(feeds={"sources_file": "missing.json"}), base_dir=tmp_path)

    def test_endpoint_strips_trailing_slash(self):
        assert ApiConfig("https://x.example/v1/", "k", "m").endpoint == "https://x.example/v1/chat/completions"
