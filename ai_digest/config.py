"""Configuration loading for the digest pipeline.

The config file is YAML (JSON files load through the same parser). Lookup order:
explicit path, ``$AI_DIGEST_CONFIG``, ``./config.yaml``, ``./config.json``,
``~/.config/ai-digest/config.yaml``.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ai_digest.errors import ConfigError
from ai_digest.storage.models import FeedSource

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AI_DIGEST_CONFIG"
DEFAULT_CONFIG_NAMES = ("config.yaml", "config.json")
USER_CONFIG_PATH = Path("~/.config/ai-digest/config.yaml")

DEFAULT_FEED_TIMEOUT = 15
DEFAULT_FEED_CONCURRENCY = 10
DEFAULT_FEED_PARSER = "pattern"
DEFAULT_SOURCES_FILE = "config/rss-feeds.json"

DEFAULT_LLM_TIMEOUT = 120
DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_CONCURRENT_BATCHES = 2

DEFAULT_HOURS = 48
DEFAULT_TOP_N = 15
DEFAULT_LANG = "zh"
SUPPORTED_LANGS = ("zh", "en")
DEFAULT_OUTPUT_DIR = "data"

DEFAULT_CACHE_PATH = "data/cache/feeds.db"
DEFAULT_CACHE_TTL_MINUTES = 30

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def _expand_env(value: Any) -> str:
    """Resolve ${ENV_VAR} references inline; unknown variables become empty."""
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), str(value))


@dataclass(frozen=True)
class ApiConfig:
    """One LLM backend: endpoint, credential and model."""

    base_url: str
    api_key: str
    model: str

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


@dataclass
class LLMConfig:
    apis: List[ApiConfig]
    timeout_seconds: float = DEFAULT_LLM_TIMEOUT
    extra_body: Dict[str, Any] = field(default_factory=dict)
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> LLMConfig:
        raw_apis = cfg.get("apis") or []
        if not isinstance(raw_apis, list) or not raw_apis:
            raise ConfigError("llm.apis must list at least one backend (base_url, api_key, model)")
        apis: List[ApiConfig] = []
        for i, api in enumerate(raw_apis):
            if not isinstance(api, dict) or not api.get("base_url") or not api.get("model"):
                raise ConfigError(f"llm.apis[{i}] needs base_url and model")
            apis.append(
                ApiConfig(
                    base_url=str(api["base_url"]),
                    api_key=_expand_env(api.get("api_key", "")),
                    model=str(api["model"]),
                )
            )
        headers = {str(k): _expand_env(v) for k, v in (cfg.get("extra_headers") or {}).items()}
        return cls(
            apis=apis,
            timeout_seconds=float(cfg.get("timeout_seconds") or DEFAULT_LLM_TIMEOUT),
            extra_body=dict(cfg.get("extra_body") or {}),
            extra_headers=headers,
        )


@dataclass
class FeedsConfig:
    concurrency: int = DEFAULT_FEED_CONCURRENCY
    timeout_seconds: float = DEFAULT_FEED_TIMEOUT
    parser: str = DEFAULT_FEED_PARSER

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> FeedsConfig:
        return cls(
            concurrency=int(cfg.get("concurrency") or DEFAULT_FEED_CONCURRENCY),
            timeout_seconds=float(cfg.get("timeout_seconds") or DEFAULT_FEED_TIMEOUT),
            parser=str(cfg.get("parser") or DEFAULT_FEED_PARSER).lower().strip(),
        )


@dataclass
class DigestConfig:
    hours: int = DEFAULT_HOURS
    top_n: int = DEFAULT_TOP_N
    lang: str = DEFAULT_LANG
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES
    output_dir: str = DEFAULT_OUTPUT_DIR

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> DigestConfig:
        lang = str(cfg.get("lang") or DEFAULT_LANG)
        if lang not in SUPPORTED_LANGS:
            raise ConfigError(f"digest.lang must be one of {', '.join(SUPPORTED_LANGS)}, got {lang!r}")
        return cls(
            hours=int(cfg.get("hours") or DEFAULT_HOURS),
            top_n=int(cfg.get("top_n") or DEFAULT_TOP_N),
            lang=lang,
            batch_size=int(cfg.get("batch_size") or DEFAULT_BATCH_SIZE),
            max_concurrent_batches=int(cfg.get("max_concurrent_batches") or DEFAULT_MAX_CONCURRENT_BATCHES),
            output_dir=str(cfg.get("output_dir") or DEFAULT_OUTPUT_DIR),
        )


@dataclass
class CacheConfig:
    enabled: bool = True
    path: str = DEFAULT_CACHE_PATH
    ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> CacheConfig:
        return cls(
            enabled=bool(cfg.get("enabled", True)),
            path=str(cfg.get("path") or DEFAULT_CACHE_PATH),
            ttl_minutes=int(cfg.get("ttl_minutes") or DEFAULT_CACHE_TTL_MINUTES),
        )


@dataclass
class AppConfig:
    """Fully parsed configuration."""

    llm: LLMConfig
    feeds: FeedsConfig
    digest: DigestConfig
    cache: CacheConfig
    sources: List[FeedSource]
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], base_dir: Optional[Path] = None) -> AppConfig:
        if not isinstance(raw, dict):
            raise ConfigError("Config root must be a mapping")
        feeds_raw = raw.get("feeds") or {}
        return cls(
            llm=LLMConfig.from_dict(raw.get("llm") or {}),
            feeds=FeedsConfig.from_dict(feeds_raw),
            digest=DigestConfig.from_dict(raw.get("digest") or {}),
            cache=CacheConfig.from_dict(raw.get("cache") or {}),
            sources=_load_sources(feeds_raw, base_dir or Path.cwd()),
        )


def candidate_paths(explicit: Optional[str] = None) -> List[Path]:
    """Return config file paths in lookup order."""
    paths: List[Path] = []
    if explicit:
        paths.append(Path(explicit))
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        paths.append(Path(env_path))
    paths.extend(Path.cwd() / name for name in DEFAULT_CONFIG_NAMES)
    paths.append(USER_CONFIG_PATH.expanduser())
    return paths


def read_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_config(explicit: Optional[str] = None) -> AppConfig:
    """Find, read and validate the configuration."""
    paths = candidate_paths(explicit)
    logger.debug("Config candidates: %s", [str(p) for p in paths])
    if explicit and not Path(explicit).exists():
        raise ConfigError(f"Config file not found: {explicit}")

    for path in paths:
        if not path.exists():
            continue
        try:
            raw = read_yaml(path)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load config %s: %s", path, e)
            continue
        config = AppConfig.from_dict(raw or {}, base_dir=path.resolve().parent)
        config.path = path
        logger.info("Loaded config %s (%d LLM backends, %d feeds)", path, len(config.llm.apis), len(config.sources))
        for i, api in enumerate(config.llm.apis, 1):
            logger.debug("API %d: %s (%s)", i, api.base_url, api.model)
        return config

    raise ConfigError("Config file not found. Checked paths:\n" + "\n".join(str(p) for p in paths))


def _load_sources(feeds_cfg: Dict[str, Any], base_dir: Path) -> List[FeedSource]:
    """Feed sources come inline (feeds.sources) or from a JSON/YAML list file."""
    raw_sources = feeds_cfg.get("sources")
    if raw_sources is None:
        sources_file = Path(feeds_cfg.get("sources_file") or DEFAULT_SOURCES_FILE)
        if not sources_file.is_absolute():
            sources_file = base_dir / sources_file
        if not sources_file.exists():
            raise ConfigError(f"Feed list not found: {sources_file}")
        try:
            raw_sources = read_yaml(sources_file)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load feed list {sources_file}: {e}") from e

    if not isinstance(raw_sources, list):
        raise ConfigError("Feed list must be a list of {name, xmlUrl, htmlUrl} records")
    sources = [FeedSource.from_config(s) for s in raw_sources if isinstance(s, dict)]
    sources = [s for s in sources if s.xml_url]
    if not sources:
        raise ConfigError("No feed sources configured")
    return sources
